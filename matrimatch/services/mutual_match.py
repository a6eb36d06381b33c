"""
MatriMatch — Mutual Match Detector

Records a member's action on a pair and, inside the same transaction,
decides whether the pair just became mutual.  Notification tasks are
enqueued only after the transaction commits:

  * pair became mutual  →  ``mutual_match`` to both members, each with an
                           independent 5-30 s jitter
  * plain like          →  ``interest_expressed`` to the target
  * super-like          →  ``super_like`` to the target

Re-liking an already-mutual pair changes nothing and enqueues nothing.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from matrimatch.config import Settings, get_settings
from matrimatch.errors import MemberNotFoundError
from matrimatch.models.member import Member
from matrimatch.schemas.notification import (
    InterestExpressedPayload,
    MutualMatchPayload,
    SuperLikePayload,
)
from matrimatch.services import state_machine as sm
from matrimatch.services.match_store import ActionResult, MatchStateStore
from matrimatch.tasks.definitions import SendMatchNotification
from matrimatch.tasks.queue import TaskQueue

logger = structlog.get_logger("matrimatch.mutual_match")


@dataclass
class ActionOutcome:
    result: ActionResult
    notifications: list[SendMatchNotification] = field(default_factory=list)

    @property
    def is_mutual(self) -> bool:
        return self.result.status == sm.MUTUAL


class MutualMatchDetector:
    """Entry point for like / super-like / dislike / block actions.

    Parameters
    ----------
    match_store:
        Persists the action and derives the pair status.
    task_queue:
        Receives notification tasks after commit.
    settings:
        Mutual-notification jitter bounds.
    rng:
        Random source for the jitter; seeded in tests.
    """

    def __init__(
        self,
        match_store: MatchStateStore,
        task_queue: TaskQueue,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.match_store = match_store
        self.task_queue = task_queue
        self.settings = settings or get_settings()
        self.rng = rng or random.Random()

    async def is_mutual(self, member_a: uuid.UUID, member_b: uuid.UUID, db_session: AsyncSession) -> bool:
        return await self.match_store.is_mutual(member_a, member_b, db_session)

    async def record_action(
        self,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
        action: str,
        db_session: AsyncSession,
        message: str | None = None,
    ) -> ActionOutcome:
        """Record the action, commit, then enqueue the resulting notifications.

        Parameters
        ----------
        actor_id:
            Member performing the action.
        target_id:
            Member the action is about.
        action:
            One of ``liked``, ``super_liked``, ``disliked``, ``blocked``.
        db_session:
            Active SQLAlchemy async session; committed here.
        message:
            Optional note attached to a plain like.

        Returns
        -------
        ActionOutcome
            The stored result and the notification tasks that were enqueued.
        """
        actor = await db_session.get(Member, actor_id)
        if actor is None:
            raise MemberNotFoundError(actor_id)
        target = await db_session.get(Member, target_id)
        if target is None:
            raise MemberNotFoundError(target_id)

        try:
            result = await self.match_store.record_action(actor_id, target_id, action, db_session)
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

        outcome = ActionOutcome(result=result)
        for recipient_id, payload, delay in self._notifications_for(actor, target, action, result, message):
            task = SendMatchNotification(recipient_id=recipient_id, payload=payload)
            await self.task_queue.enqueue(task, delay_seconds=delay)
            outcome.notifications.append(task)

        if result.became_mutual:
            logger.info(
                "mutual_match_detected",
                member_a=str(actor_id),
                member_b=str(target_id),
                match_id=str(result.record.id),
            )
        return outcome

    def _notifications_for(
        self,
        actor: Member,
        target: Member,
        action: str,
        result: ActionResult,
        message: str | None,
    ) -> list[tuple[uuid.UUID, object, int]]:
        if result.became_mutual:
            low = self.settings.MUTUAL_NOTIFICATION_DELAY_MIN_SECONDS
            high = self.settings.MUTUAL_NOTIFICATION_DELAY_MAX_SECONDS
            return [
                (
                    actor.id,
                    MutualMatchPayload(
                        actor_id=target.id,
                        actor_name=target.display_name,
                        match_id=result.record.id,
                    ),
                    self.rng.randint(low, high),
                ),
                (
                    target.id,
                    MutualMatchPayload(
                        actor_id=actor.id,
                        actor_name=actor.display_name,
                        match_id=result.reverse_record.id,
                    ),
                    self.rng.randint(low, high),
                ),
            ]
        if result.status in (sm.MUTUAL, sm.BLOCKED, sm.DISLIKED):
            return []
        if action == sm.LIKED:
            return [
                (
                    target.id,
                    InterestExpressedPayload(
                        actor_id=actor.id,
                        actor_name=actor.display_name,
                        match_id=result.reverse_record.id,
                        message=message,
                    ),
                    0,
                )
            ]
        if action == sm.SUPER_LIKED:
            return [
                (
                    target.id,
                    SuperLikePayload(
                        actor_id=actor.id,
                        actor_name=actor.display_name,
                        match_id=result.reverse_record.id,
                    ),
                    0,
                )
            ]
        return []
