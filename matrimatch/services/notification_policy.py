"""
MatriMatch — Notification Dispatch Policy

Decides whether a notification may be delivered.  Checks run in a fixed order
and the first veto wins:

  1. notifications disabled, or the recipient is the actor
  2. message notifications while the recipient is looking at that conversation
  3. blocked conversation / blocked pair
  4. quiet hours in the recipient's local time (urgent types bypass)
  5. profile-view premium gate, then per-type daily caps
  6. short-window rate limit for message notifications

A veto is an ordinary outcome, never an error.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from matrimatch.config import Settings, get_settings
from matrimatch.models.member import Member
from matrimatch.models.notification import Conversation, NotificationRecord
from matrimatch.schemas.notification import (
    URGENT_TYPES,
    MessagePayload,
    NotificationType,
    ProfileViewPayload,
)
from matrimatch.services.match_store import MatchStateStore
from matrimatch.services.rate_limit import RedisRateLimiter
from matrimatch.utils.clock import Clock, as_utc, local_day_start_utc, resolve_zone

logger = structlog.get_logger("matrimatch.notification_policy")


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = "allowed"


ALLOW = PolicyDecision(True)


def current_conversation_key(member_id: uuid.UUID) -> str:
    return f"member:{member_id}:current_conversation"


class NotificationDispatchPolicy:
    """Gatekeeper evaluated before any fanout.

    Parameters
    ----------
    redis:
        Holds the "current conversation" presence keys and rate-limit counters.
    clock:
        Source of "now" for quiet hours, day boundaries and presence.
    match_store:
        Used to detect blocked pairs.
    settings:
        Quiet-hours window, daily caps and rate limits.
    """

    def __init__(
        self,
        redis,
        clock: Clock,
        match_store: MatchStateStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.redis = redis
        self.clock = clock
        self.match_store = match_store or MatchStateStore(clock=clock, settings=self.settings)
        self.rate_limiter = RedisRateLimiter(redis)

    # ── Public API ────────────────────────────────────────────────────────

    async def should_notify(self, recipient: Member, payload, db_session: AsyncSession) -> bool:
        return (await self.evaluate(recipient, payload, db_session)).allowed

    async def evaluate(self, recipient: Member, payload, db_session: AsyncSession) -> PolicyDecision:
        return await self._run(
            (
                self._check_preferences,
                self._check_engagement,
                self._check_blocked,
                self._check_quiet_hours,
                self._check_daily_cap,
                self._check_rate_limit,
            ),
            recipient,
            payload,
            db_session,
        )

    async def evaluate_resume(self, recipient: Member, payload, db_session: AsyncSession) -> PolicyDecision:
        """Checks repeated before finishing an event that is already recorded.

        The daily cap and the rate limit were charged when the record was
        created.  The other checks depend on the moment of delivery and run
        again.
        """
        return await self._run(
            (self._check_preferences, self._check_blocked, self._check_quiet_hours),
            recipient,
            payload,
            db_session,
        )

    async def _run(self, checks, recipient: Member, payload, db_session: AsyncSession) -> PolicyDecision:
        ntype = payload.notification_type
        now = self.clock.now()
        for check in checks:
            decision = await check(recipient, payload, ntype, now, db_session)
            if not decision.allowed:
                logger.info(
                    "notification_vetoed",
                    recipient_id=str(recipient.id),
                    type=ntype.value,
                    reason=decision.reason,
                )
                return decision
        return ALLOW

    def in_quiet_hours(self, recipient: Member, now: datetime) -> bool:
        hour = as_utc(now).astimezone(resolve_zone(recipient.timezone)).hour
        start, end = self.settings.QUIET_HOURS_START, self.settings.QUIET_HOURS_END
        if start == end:
            return False
        if start < end:
            return start <= hour < end
        return hour >= start or hour < end

    def daily_cap(self, recipient: Member, ntype: NotificationType, now: datetime) -> int | None:
        if ntype is NotificationType.PROFILE_VIEW and recipient.is_premium_active(now):
            return self.settings.PREMIUM_PROFILE_VIEW_DAILY_CAP
        return self.settings.DAILY_NOTIFICATION_CAPS.get(ntype.value)

    # ── Checks ────────────────────────────────────────────────────────────

    async def _check_preferences(self, recipient, payload, ntype, now, db_session) -> PolicyDecision:
        if not recipient.notifications_enabled:
            return PolicyDecision(False, "notifications_disabled")
        if payload.actor_id == recipient.id:
            return PolicyDecision(False, "self_notification")
        return ALLOW

    async def _check_engagement(self, recipient, payload, ntype, now, db_session) -> PolicyDecision:
        if not isinstance(payload, MessagePayload):
            return ALLOW
        last_active = as_utc(recipient.last_active_at)
        if last_active is None:
            return ALLOW
        idle = (now - last_active).total_seconds()
        if idle > self.settings.ACTIVE_CONVERSATION_WINDOW_SECONDS:
            return ALLOW
        viewing = await self.redis.get(current_conversation_key(recipient.id))
        if viewing is not None and viewing == str(payload.conversation_id):
            return PolicyDecision(False, "actively_engaged")
        return ALLOW

    async def _check_blocked(self, recipient, payload, ntype, now, db_session) -> PolicyDecision:
        if isinstance(payload, MessagePayload):
            conversation = await db_session.get(Conversation, payload.conversation_id)
            if conversation is None:
                return PolicyDecision(False, "conversation_missing")
            if conversation.status == "blocked" or conversation.blocked_by is not None:
                return PolicyDecision(False, "conversation_blocked")
            return ALLOW
        if await self.match_store.is_blocked(recipient.id, payload.actor_id, db_session):
            return PolicyDecision(False, "relationship_blocked")
        return ALLOW

    async def _check_quiet_hours(self, recipient, payload, ntype, now, db_session) -> PolicyDecision:
        if ntype in URGENT_TYPES:
            return ALLOW
        if self.in_quiet_hours(recipient, now):
            return PolicyDecision(False, "quiet_hours")
        return ALLOW

    async def _check_daily_cap(self, recipient, payload, ntype, now, db_session) -> PolicyDecision:
        if isinstance(payload, ProfileViewPayload):
            if not recipient.is_premium_active(now) and not payload.special_view:
                return PolicyDecision(False, "premium_only")

        cap = self.daily_cap(recipient, ntype, now)
        if cap is None:
            return ALLOW
        day_start = local_day_start_utc(now, resolve_zone(recipient.timezone))
        stmt = (
            select(func.count())
            .select_from(NotificationRecord)
            .where(
                NotificationRecord.user_id == recipient.id,
                NotificationRecord.type == ntype.value,
                NotificationRecord.created_at >= day_start,
            )
        )
        sent_today = int((await db_session.execute(stmt)).scalar_one())
        if sent_today >= cap:
            return PolicyDecision(False, "daily_cap_reached")
        return ALLOW

    async def _check_rate_limit(self, recipient, payload, ntype, now, db_session) -> PolicyDecision:
        if ntype is not NotificationType.MESSAGE:
            return ALLOW
        decision = await self.rate_limiter.hit(
            f"notify_rate:{recipient.id}:message",
            limit=self.settings.MESSAGE_RATE_LIMIT,
            window_seconds=self.settings.MESSAGE_RATE_WINDOW_SECONDS,
        )
        if not decision.allowed:
            return PolicyDecision(False, "rate_limited")
        return ALLOW
