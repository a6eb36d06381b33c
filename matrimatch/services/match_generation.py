"""
MatriMatch — Daily Match Generation Pipeline

Two entry shapes:

  generate_for_user(user_id, db_session, limit)
  generate_for_all(chunk_size, limit)

Per-user procedure (strictly sequential):

  1. claim the ``daily_matches:{user}:{date}`` marker with ``SET NX EX``;
     a second run on the same day is a no-op
  2. build the candidate pool in SQL (active, approved, gender-compatible,
     inside the preferred age range, not blocked in either direction, not
     already acted on or scored today)
  3. score every candidate (per-day ScoreCache first), drop deal-breaker
     violations, rank by composite
  4. store the top ``limit`` as pending ``MatchRecord`` rows
  5. record ``last_matches_generated_at`` and commit
  6. enqueue ``new_match`` notifications for the top three with independent
     randomised delays

If any step fails the marker is released so a retry can run.

The all-users path streams eligible members by keyset pagination in chunks
and isolates failures per member: one member's error is logged and counted,
never propagated.  Only failures outside that boundary (the chunk query
itself) escape to the task layer.
"""

from __future__ import annotations

import asyncio
import random
import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Awaitable, Callable, Iterable, Sequence, TypeVar

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matrimatch.config import Settings, get_settings
from matrimatch.errors import MemberNotFoundError, ProfileIncompleteError
from matrimatch.models.member import Member
from matrimatch.schemas.notification import NewMatchPayload
from matrimatch.services.match_store import MatchStateStore
from matrimatch.services.score_cache import ScoreCache
from matrimatch.services.scoring_service import CompatibilityScorer, ScoreBreakdown
from matrimatch.services.snapshots import MemberSnapshot, PreferenceSnapshot
from matrimatch.tasks.definitions import SendMatchNotification
from matrimatch.tasks.queue import TaskQueue
from matrimatch.utils.clock import Clock

logger = structlog.get_logger("matrimatch.match_generation")

T = TypeVar("T")


@dataclass
class GenerationResult:
    user_id: uuid.UUID
    skipped: bool = False
    reason: str | None = None
    candidates_scored: int = 0
    matches_stored: int = 0
    notifications_enqueued: int = 0


@dataclass
class BatchSummary:
    processed: int = 0
    generated: int = 0
    skipped: int = 0
    failed: int = 0
    chunks: int = 0


def filter_blocked_users(candidates: Iterable[T], blocked_ids: set[uuid.UUID]) -> list[T]:
    """Drop candidates whose ``id`` is in ``blocked_ids``; order is preserved."""
    return [c for c in candidates if c.id not in blocked_ids]


def marker_key(user_id: uuid.UUID, day: date) -> str:
    return f"daily_matches:{user_id}:{day.isoformat()}"


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:  # 29 February
        return day.replace(year=day.year - years, day=28)


class DailyMatchGenerator:
    """Generates each eligible member's daily candidate list.

    Parameters
    ----------
    scorer:
        Compatibility scoring engine.
    match_store:
        Persists pending suggestions.
    score_cache:
        Per-day cache of pair scores.
    redis:
        Holds the per-day idempotency markers.
    task_queue:
        Receives ``new_match`` notification tasks.
    clock:
        Source of "now" and "today".
    session_factory:
        Opens one session per member on the all-users path.
    settings:
        Tier limits, chunk size, pacing and notification delays.
    sleep:
        Awaitable used for pacing between members.
    rng:
        Random source for notification delays.
    """

    def __init__(
        self,
        scorer: CompatibilityScorer,
        match_store: MatchStateStore,
        score_cache: ScoreCache,
        redis,
        task_queue: TaskQueue,
        clock: Clock,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.scorer = scorer
        self.match_store = match_store
        self.score_cache = score_cache
        self.redis = redis
        self.task_queue = task_queue
        self.clock = clock
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.sleep = sleep
        self.rng = rng or random.Random()

    # ── Public API ────────────────────────────────────────────────────────

    def limit_for(self, member: Member, now: datetime) -> int:
        if member.is_premium_active(now):
            return self.settings.PREMIUM_DAILY_MATCH_LIMIT
        return self.settings.FREE_DAILY_MATCH_LIMIT

    async def generate_for_user(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        limit: int | None = None,
    ) -> GenerationResult:
        """Generate today's matches for one member.

        Parameters
        ----------
        user_id:
            Member to generate for.
        db_session:
            Active SQLAlchemy async session; committed on success.
        limit:
            Overrides the subscription-tier limit when given.

        Returns
        -------
        GenerationResult
            ``skipped=True`` when the member already ran today.

        Raises
        ------
        MemberNotFoundError, ProfileIncompleteError
            Input errors; nothing is written.
        """
        log = logger.bind(user_id=str(user_id))
        member = await db_session.get(Member, user_id)
        if member is None:
            raise MemberNotFoundError(user_id)
        self._check_eligible(member)

        now = self.clock.now()
        key = marker_key(user_id, now.date())
        acquired = await self.redis.set(
            key, now.isoformat(), nx=True, ex=self.settings.GENERATION_MARKER_TTL_SECONDS
        )
        if not acquired:
            log.info("daily_matches_already_generated")
            return GenerationResult(user_id=user_id, skipped=True, reason="already_generated_today")

        try:
            result = await self._generate(member, db_session, limit or self.limit_for(member, now), now)
        except Exception:
            await db_session.rollback()
            await self.redis.delete(key)
            raise

        log.info("daily_matches_generated", **{k: v for k, v in asdict(result).items() if k != "user_id"})
        return result

    async def generate_for_all(
        self,
        chunk_size: int | None = None,
        limit: int | None = None,
    ) -> BatchSummary:
        """Generate for every eligible member, chunk by chunk.

        Per-member failures are counted in ``BatchSummary.failed``; the run
        continues with the next member.
        """
        if self.session_factory is None:
            raise RuntimeError("generate_for_all requires a session_factory")
        chunk_size = chunk_size or self.settings.GENERATION_CHUNK_SIZE
        summary = BatchSummary()
        logger.info("daily_match_generation_started", chunk_size=chunk_size, limit=limit)

        last_id: uuid.UUID | None = None
        while True:
            ids = await self._next_chunk(last_id, chunk_size)
            if not ids:
                break
            summary.chunks += 1
            for user_id in ids:
                summary.processed += 1
                try:
                    async with self.session_factory() as session:
                        result = await self.generate_for_user(user_id, session, limit)
                except Exception as exc:
                    summary.failed += 1
                    logger.warning(
                        "daily_match_generation_failed_for_user",
                        user_id=str(user_id),
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                else:
                    if result.skipped:
                        summary.skipped += 1
                    else:
                        summary.generated += 1
                await self.sleep(self.settings.GENERATION_USER_DELAY_SECONDS)
            last_id = ids[-1]
            logger.info("daily_match_chunk_processed", chunk=summary.chunks, size=len(ids))

        logger.info("daily_match_generation_completed", **asdict(summary))
        return summary

    # ── Internals ─────────────────────────────────────────────────────────

    def _check_eligible(self, member: Member) -> None:
        if member.is_eligible_for_matching(self.settings.PROFILE_COMPLETION_THRESHOLD):
            return
        if member.account_status != "active":
            raise ProfileIncompleteError(member.id, f"account status is {member.account_status}")
        if member.profile_status != "approved":
            raise ProfileIncompleteError(member.id, f"profile status is {member.profile_status}")
        raise ProfileIncompleteError(member.id, f"profile {member.profile_completion}% complete")

    def _eligible_clause(self):
        return (
            Member.account_status == "active",
            Member.profile_status == "approved",
            Member.profile_completion >= self.settings.PROFILE_COMPLETION_THRESHOLD,
        )

    async def _next_chunk(self, after: uuid.UUID | None, size: int) -> list[uuid.UUID]:
        async with self.session_factory() as session:
            stmt = select(Member.id).where(*self._eligible_clause())
            if after is not None:
                stmt = stmt.where(Member.id > after)
            stmt = stmt.order_by(Member.id).limit(size)
            return list((await session.execute(stmt)).scalars().all())

    async def _candidate_pool(
        self,
        member: Member,
        preference: PreferenceSnapshot,
        excluded: set[uuid.UUID],
        today: date,
        db_session: AsyncSession,
    ) -> Sequence[Member]:
        stmt = select(Member).where(Member.id != member.id, *self._eligible_clause())
        if excluded:
            stmt = stmt.where(Member.id.not_in(sorted(excluded)))
        # Unknown birth dates stay in the pool and score neutral on age.
        if preference.min_age is not None:
            stmt = stmt.where(
                or_(Member.birth_date.is_(None), Member.birth_date <= _years_before(today, preference.min_age))
            )
        if preference.max_age is not None:
            stmt = stmt.where(
                or_(Member.birth_date.is_(None), Member.birth_date > _years_before(today, preference.max_age + 1))
            )
        if preference.preferred_genders:
            stmt = stmt.where(func.lower(Member.gender).in_(sorted(preference.preferred_genders)))
        else:
            stmt = stmt.where(func.lower(Member.gender) != member.gender.lower())
        return (await db_session.execute(stmt)).scalars().all()

    async def _score(
        self,
        seeker: MemberSnapshot,
        preference: PreferenceSnapshot,
        candidate: Member,
        now: datetime,
    ) -> ScoreBreakdown:
        cached = await self.score_cache.get(seeker.id, candidate.id)
        if cached is not None:
            return cached
        breakdown = self.scorer.score(
            seeker, preference, MemberSnapshot.from_member(candidate, now), now
        )
        await self.score_cache.put(seeker.id, candidate.id, breakdown)
        return breakdown

    async def _generate(
        self,
        member: Member,
        db_session: AsyncSession,
        limit: int,
        now: datetime,
    ) -> GenerationResult:
        seeker = MemberSnapshot.from_member(member, now)
        preference = PreferenceSnapshot.from_preference(member.preference)

        excluded = await self.match_store.excluded_candidate_ids(member.id, now.date(), db_session)
        pool = await self._candidate_pool(member, preference, excluded, now.date(), db_session)
        candidates = filter_blocked_users(pool, excluded)

        scored: list[tuple[Member, ScoreBreakdown]] = []
        for candidate in candidates:
            breakdown = await self._score(seeker, preference, candidate, now)
            if breakdown.excluded:
                continue
            scored.append((candidate, breakdown))
        scored.sort(key=lambda item: (-item[1].composite, str(item[0].id)))

        match_type = "premium_suggestion" if seeker.is_premium else "daily_suggestion"
        stored: list[tuple[Member, ScoreBreakdown]] = []
        for candidate, breakdown in scored[:limit]:
            written = await self.match_store.upsert_pending(
                member.id, candidate.id, breakdown, db_session, match_type=match_type
            )
            if written:
                stored.append((candidate, breakdown))

        member.last_matches_generated_at = now
        await db_session.commit()

        enqueued = 0
        low = self.settings.MATCH_NOTIFICATION_DELAY_MIN_SECONDS
        high = self.settings.MATCH_NOTIFICATION_DELAY_MAX_SECONDS
        for candidate, breakdown in stored[: self.settings.NOTIFY_TOP_MATCHES]:
            record = await self.match_store.get_record(member.id, candidate.id, db_session)
            payload = NewMatchPayload(
                actor_id=candidate.id,
                actor_name=candidate.display_name,
                match_id=record.id,
                compatibility_score=breakdown.composite,
                suggested_on=now.date(),
            )
            await self.task_queue.enqueue(
                SendMatchNotification(recipient_id=member.id, payload=payload),
                delay_seconds=self.rng.randint(low, high),
            )
            enqueued += 1

        return GenerationResult(
            user_id=member.id,
            candidates_scored=len(candidates),
            matches_stored=len(stored),
            notifications_enqueued=enqueued,
        )
