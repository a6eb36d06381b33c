"""
MatriMatch — Match State Store

Persists pairwise ``MatchRecord`` rows and drives the status state machine.

Storage layout
--------------
Rows are directional (``initiator_id`` → ``candidate_id``).  A generated
suggestion creates only the seeker's row; the first user action on a pair
creates both rows so that each member sees the same pair-level status.
Action writes lock both rows (``SELECT ... FOR UPDATE``) and recompute the
derived ``status``/``can_communicate`` fields inside the caller's transaction.

Batch writes of ``pending`` suggestions use conditional statements
(``INSERT ... ON CONFLICT DO NOTHING`` followed by ``UPDATE ... WHERE
status IN ('pending', 'expired') AND no action recorded``) so a concurrent
user action is never overwritten by a regeneration.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matrimatch.config import Settings, get_settings
from matrimatch.database import insert_if_absent
from matrimatch.errors import (
    BlockedPairError,
    InvalidActionError,
    PremiumRequiredError,
)
from matrimatch.models.match import MatchRecord
from matrimatch.services import state_machine as sm
from matrimatch.services.scoring_service import ScoreBreakdown
from matrimatch.utils.clock import Clock, SystemClock

logger = structlog.get_logger("matrimatch.match_store")

_REFRESHABLE_STATUSES = (sm.PENDING, sm.EXPIRED)


@dataclass
class ActionResult:
    """Outcome of recording one member's action on a pair."""

    record: MatchRecord
    reverse_record: MatchRecord
    previous_status: str
    status: str
    became_mutual: bool

    @property
    def changed(self) -> bool:
        return self.previous_status != self.status


class MatchStateStore:
    """Reads and writes ``MatchRecord`` rows.

    Parameters
    ----------
    clock:
        Source of timestamps for actions and expiry.
    settings:
        Supplies ``MATCH_EXPIRY_DAYS``.
    """

    def __init__(self, clock: Clock | None = None, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.expiry = timedelta(days=settings.MATCH_EXPIRY_DAYS)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_record(
        self,
        initiator_id: uuid.UUID,
        candidate_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> MatchRecord | None:
        stmt = select(MatchRecord).where(
            MatchRecord.initiator_id == initiator_id,
            MatchRecord.candidate_id == candidate_id,
        )
        return (await db_session.execute(stmt)).scalar_one_or_none()

    async def is_mutual(
        self,
        member_a: uuid.UUID,
        member_b: uuid.UUID,
        db_session: AsyncSession,
    ) -> bool:
        """True iff both members' recorded actions toward each other are positive.

        Either directional row answers the question; the result is the same
        whichever member is passed first.
        """
        stmt = select(MatchRecord).where(
            or_(
                and_(MatchRecord.initiator_id == member_a, MatchRecord.candidate_id == member_b),
                and_(MatchRecord.initiator_id == member_b, MatchRecord.candidate_id == member_a),
            )
        )
        records = (await db_session.execute(stmt)).scalars().all()
        return any(
            sm.is_mutual(r.initiator_action, r.candidate_action) for r in records
        )

    async def blocked_member_ids(
        self,
        member_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> set[uuid.UUID]:
        """Members on the other side of a blocked pair, in either direction."""
        stmt = select(MatchRecord.initiator_id, MatchRecord.candidate_id).where(
            MatchRecord.status == sm.BLOCKED,
            or_(MatchRecord.initiator_id == member_id, MatchRecord.candidate_id == member_id),
        )
        blocked: set[uuid.UUID] = set()
        for initiator_id, candidate_id in (await db_session.execute(stmt)).all():
            blocked.add(candidate_id if initiator_id == member_id else initiator_id)
        return blocked

    async def is_blocked(
        self,
        member_a: uuid.UUID,
        member_b: uuid.UUID,
        db_session: AsyncSession,
    ) -> bool:
        return member_b in await self.blocked_member_ids(member_a, db_session)

    async def excluded_candidate_ids(
        self,
        seeker_id: uuid.UUID,
        today: date,
        db_session: AsyncSession,
        include_scored_today: bool = False,
    ) -> set[uuid.UUID]:
        """Candidates the daily generation must skip for ``seeker_id``.

        Covers pairs that have left the pending state (acted on, mutual,
        blocked) and, unless ``include_scored_today``, pairs already scored
        today.  Blocks recorded from the other direction are added too.
        """
        conditions = [MatchRecord.status.not_in(_REFRESHABLE_STATUSES)]
        if not include_scored_today:
            conditions.append(MatchRecord.scored_on == today)
        stmt = select(MatchRecord.candidate_id).where(
            MatchRecord.initiator_id == seeker_id,
            or_(*conditions),
        )
        excluded = set((await db_session.execute(stmt)).scalars().all())
        excluded |= await self.blocked_member_ids(seeker_id, db_session)
        return excluded

    async def list_for_member(
        self,
        member_id: uuid.UUID,
        db_session: AsyncSession,
        status: str | None = None,
        limit: int = 50,
    ) -> list[MatchRecord]:
        stmt = select(MatchRecord).where(MatchRecord.initiator_id == member_id)
        if status is not None:
            stmt = stmt.where(MatchRecord.status == status)
        stmt = stmt.order_by(
            MatchRecord.compatibility_score.desc().nulls_last(),
            MatchRecord.created_at.desc(),
        ).limit(limit)
        return list((await db_session.execute(stmt)).scalars().all())

    async def statistics(self, member_id: uuid.UUID, db_session: AsyncSession) -> dict:
        """Counts of the member's matches and actions, plus a response rate."""
        own = MatchRecord.initiator_id == member_id

        async def _count(*conditions) -> int:
            stmt = select(func.count()).select_from(MatchRecord).where(own, *conditions)
            return int((await db_session.execute(stmt)).scalar_one())

        total = await _count()
        mutual = await _count(MatchRecord.status == sm.MUTUAL)
        pending = await _count(MatchRecord.status == sm.PENDING)
        likes_sent = await _count(MatchRecord.initiator_action.in_(sorted(sm.POSITIVE_ACTIONS)))
        super_likes_sent = await _count(MatchRecord.initiator_action == sm.SUPER_LIKED)
        likes_received = await _count(MatchRecord.candidate_action.in_(sorted(sm.POSITIVE_ACTIONS)))
        responded = await _count(MatchRecord.initiator_action != sm.NO_ACTION)

        return {
            "total_matches": total,
            "mutual_matches": mutual,
            "pending_matches": pending,
            "likes_sent": likes_sent,
            "super_likes_sent": super_likes_sent,
            "likes_received": likes_received,
            "response_rate": round(100.0 * responded / total, 1) if total else 0.0,
        }

    # ── Writes ────────────────────────────────────────────────────────────

    async def upsert_pending(
        self,
        seeker_id: uuid.UUID,
        candidate_id: uuid.UUID,
        breakdown: ScoreBreakdown,
        db_session: AsyncSession,
        match_type: str = "daily_suggestion",
    ) -> bool:
        """Store a generated suggestion without clobbering user actions.

        Returns
        -------
        bool
            True when a row was inserted or refreshed; False when the pair
            already carries an action and was left untouched.
        """
        now = self.clock.now()
        values = {
            "compatibility_score": breakdown.composite,
            "sub_scores": dict(breakdown.sub_scores),
            "match_quality": breakdown.quality,
            "matching_factors": list(breakdown.matching_factors),
            "scored_on": now.date(),
            "match_type": match_type,
            "expires_at": now + self.expiry,
        }

        inserted = await insert_if_absent(
            db_session,
            MatchRecord,
            {
                "id": uuid.uuid4(),
                "initiator_id": seeker_id,
                "candidate_id": candidate_id,
                "status": sm.PENDING,
                "initiator_action": sm.NO_ACTION,
                "candidate_action": sm.NO_ACTION,
                "can_communicate": False,
                "communication_unlocked": False,
                "created_at": now,
                **values,
            },
            ["initiator_id", "candidate_id"],
        )
        if inserted:
            return True

        stmt = (
            update(MatchRecord)
            .where(
                MatchRecord.initiator_id == seeker_id,
                MatchRecord.candidate_id == candidate_id,
                MatchRecord.status.in_(_REFRESHABLE_STATUSES),
                MatchRecord.initiator_action == sm.NO_ACTION,
                MatchRecord.candidate_action == sm.NO_ACTION,
            )
            .values(status=sm.PENDING, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        result = await db_session.execute(stmt)
        return result.rowcount == 1

    async def record_action(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        action: str,
        db_session: AsyncSession,
    ) -> ActionResult:
        """Record ``actor_id``'s action toward ``target_id`` and recompute status.

        Must run inside the caller's transaction; the caller commits.  Both
        directional rows are locked, so ``became_mutual`` is True for exactly
        one of two racing likes.

        Raises
        ------
        InvalidActionError
            Unknown action, or a member acting on themselves.
        BlockedPairError
            The pair is blocked and the action is not another block.
        """
        if action not in sm.USER_ACTIONS:
            raise InvalidActionError(f"Unknown match action {action!r}")
        if actor_id == target_id:
            raise InvalidActionError("A member cannot act on their own profile")

        now = self.clock.now()
        record, reverse = await self._lock_pair(actor_id, target_id, db_session)

        previous = record.status
        if previous == sm.BLOCKED or reverse.status == sm.BLOCKED:
            if action == sm.BLOCKED:
                return ActionResult(record, reverse, sm.BLOCKED, sm.BLOCKED, False)
            raise BlockedPairError(actor_id, target_id)
        if record.initiator_action == action:
            return ActionResult(record, reverse, previous, previous, False)

        record.initiator_action = action
        record.initiator_action_at = now
        reverse.candidate_action = action
        reverse.candidate_action_at = now

        status = sm.derive_status(previous, record.initiator_action, record.candidate_action)
        became_mutual = status == sm.MUTUAL and previous != sm.MUTUAL

        for row in (record, reverse):
            row.status = status
            row.can_communicate = sm.can_communicate(status, row.communication_unlocked)
            row.updated_at = now
            if became_mutual:
                row.mutual_at = now

        await db_session.flush()
        logger.info(
            "match_action_recorded",
            actor_id=str(actor_id),
            target_id=str(target_id),
            action=action,
            previous_status=previous,
            status=status,
            became_mutual=became_mutual,
        )
        return ActionResult(record, reverse, previous, status, became_mutual)

    async def unlock_communication(
        self,
        member,
        other_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> MatchRecord:
        """Premium path: allow messaging on a non-mutual, non-blocked pair."""
        now = self.clock.now()
        if not member.is_premium_active(now):
            raise PremiumRequiredError("Unlocking communication requires an active premium plan")
        if member.id == other_id:
            raise InvalidActionError("A member cannot unlock a conversation with themselves")

        record, reverse = await self._lock_pair(member.id, other_id, db_session)
        if record.status == sm.BLOCKED or reverse.status == sm.BLOCKED:
            raise BlockedPairError(member.id, other_id)

        for row in (record, reverse):
            row.communication_unlocked = True
            row.can_communicate = sm.can_communicate(row.status, True)
            row.updated_at = now
        await db_session.flush()
        logger.info("communication_unlocked", member_id=str(member.id), other_id=str(other_id))
        return record

    async def expire_stale(self, db_session: AsyncSession) -> int:
        """Move untouched pending suggestions past ``expires_at`` to ``expired``."""
        now = self.clock.now()
        stmt = (
            update(MatchRecord)
            .where(
                MatchRecord.status == sm.PENDING,
                MatchRecord.initiator_action == sm.NO_ACTION,
                MatchRecord.candidate_action == sm.NO_ACTION,
                MatchRecord.expires_at.is_not(None),
                MatchRecord.expires_at <= now,
            )
            .values(status=sm.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db_session.execute(stmt)
        logger.info("stale_matches_expired", count=result.rowcount)
        return result.rowcount

    # ── Internals ─────────────────────────────────────────────────────────

    async def _lock_pair(
        self,
        member_a: uuid.UUID,
        member_b: uuid.UUID,
        db_session: AsyncSession,
    ) -> tuple[MatchRecord, MatchRecord]:
        """Create both directional rows if missing and lock them.

        Returns ``(a→b, b→a)``.
        """
        now = self.clock.now()
        for initiator, candidate in ((member_a, member_b), (member_b, member_a)):
            await insert_if_absent(
                db_session,
                MatchRecord,
                {
                    "id": uuid.uuid4(),
                    "initiator_id": initiator,
                    "candidate_id": candidate,
                    "status": sm.PENDING,
                    "initiator_action": sm.NO_ACTION,
                    "candidate_action": sm.NO_ACTION,
                    "match_type": "direct_action",
                    "can_communicate": False,
                    "communication_unlocked": False,
                    "created_at": now,
                },
                ["initiator_id", "candidate_id"],
            )

        stmt = (
            select(MatchRecord)
            .where(
                or_(
                    and_(MatchRecord.initiator_id == member_a, MatchRecord.candidate_id == member_b),
                    and_(MatchRecord.initiator_id == member_b, MatchRecord.candidate_id == member_a),
                )
            )
            .order_by(MatchRecord.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = (await db_session.execute(stmt)).scalars().all()
        by_direction = {(r.initiator_id, r.candidate_id): r for r in rows}
        return by_direction[(member_a, member_b)], by_direction[(member_b, member_a)]
