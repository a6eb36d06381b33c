"""
MatriMatch — Notification Fanout

Turns one approved notification into concrete deliveries:

  1. the in-app ``NotificationRecord`` (insert-if-absent on
     ``(user_id, event_key)``, so a retried task reuses the same row)
  2. an e-mail task for ``new_match`` / ``mutual_match`` when the member
     accepts e-mail
  3. a push message

Each channel records its own completion timestamp on the row, so a retry
only redoes what is still missing.  The in-app record counts as delivered
once it is committed.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matrimatch.database import insert_if_absent
from matrimatch.errors import MemberNotFoundError
from matrimatch.models.member import Member
from matrimatch.models.notification import NotificationRecord
from matrimatch.schemas.notification import EMAIL_TYPES
from matrimatch.services.notification_policy import NotificationDispatchPolicy, PolicyDecision
from matrimatch.services.notification_templates import render
from matrimatch.services.push_service import PushNotificationService
from matrimatch.tasks.definitions import SendNotificationEmail
from matrimatch.tasks.queue import TaskQueue
from matrimatch.utils.clock import Clock

logger = structlog.get_logger("matrimatch.notification_fanout")


@dataclass
class FanoutResult:
    record: NotificationRecord
    created: bool
    push_sent: bool
    email_queued: bool


@dataclass
class DispatchResult:
    decision: PolicyDecision
    fanout: FanoutResult | None = None

    @property
    def delivered(self) -> bool:
        return self.fanout is not None


class NotificationFanout:
    """Creates the in-app record and forwards to push and e-mail."""

    def __init__(
        self,
        push_service: PushNotificationService,
        task_queue: TaskQueue,
        clock: Clock,
    ) -> None:
        self.push_service = push_service
        self.task_queue = task_queue
        self.clock = clock

    async def find_existing(
        self,
        recipient_id: uuid.UUID,
        payload,
        db_session: AsyncSession,
    ) -> NotificationRecord | None:
        stmt = select(NotificationRecord).where(
            NotificationRecord.user_id == recipient_id,
            NotificationRecord.event_key == payload.event_key(),
        )
        return (await db_session.execute(stmt)).scalar_one_or_none()

    async def deliver(self, recipient: Member, payload, db_session: AsyncSession) -> FanoutResult:
        """Fan one notification out to every channel that still needs it.

        Commits after each channel so that completed work survives a failure
        in a later one.  Push failures propagate (``DeliveryError``) so the
        task is retried.
        """
        now = self.clock.now()
        rendered = render(payload)
        log = logger.bind(
            recipient_id=str(recipient.id),
            type=rendered.type.value,
            event_key=payload.event_key(),
        )

        created = await insert_if_absent(
            db_session,
            NotificationRecord,
            {
                "id": uuid.uuid4(),
                "user_id": recipient.id,
                "event_key": payload.event_key(),
                "type": rendered.type.value,
                "title": rendered.title,
                "message": rendered.body,
                "data": rendered.data,
                "priority": rendered.priority,
                "created_at": now,
                "expires_at": now + rendered.retention,
            },
            ["user_id", "event_key"],
        )
        await db_session.commit()
        record = await self.find_existing(recipient.id, payload, db_session)
        log.info("notification_recorded", notification_id=str(record.id), created=created)

        email_queued = False
        if (
            rendered.type in EMAIL_TYPES
            and recipient.email_notifications
            and record.email_queued_at is None
        ):
            await self.task_queue.enqueue(SendNotificationEmail(notification_id=record.id))
            record.email_queued_at = now
            await db_session.commit()
            email_queued = True

        push_sent = False
        if record.push_sent_at is None and recipient.push_notifications:
            push_sent = await self.push_service.send_to_member(
                recipient, rendered.title, rendered.body, rendered.data
            )
            if push_sent:
                record.push_sent_at = self.clock.now()
                await db_session.commit()

        return FanoutResult(record=record, created=created, push_sent=push_sent, email_queued=email_queued)


class NotificationDispatcher:
    """Policy check followed by fanout, for one recipient and one event.

    An event whose in-app record already exists was approved and counted
    against the daily cap on its first attempt.  It only repeats the
    delivery-time checks (``evaluate_resume``) before the fanout resumes, so
    an unfinished push never goes out during quiet hours.
    """

    def __init__(self, policy: NotificationDispatchPolicy, fanout: NotificationFanout) -> None:
        self.policy = policy
        self.fanout = fanout

    async def dispatch(
        self,
        recipient_id: uuid.UUID,
        payload,
        db_session: AsyncSession,
    ) -> DispatchResult:
        recipient = await db_session.get(Member, recipient_id)
        if recipient is None:
            raise MemberNotFoundError(recipient_id)

        existing = await self.fanout.find_existing(recipient_id, payload, db_session)
        if existing is None:
            decision = await self.policy.evaluate(recipient, payload, db_session)
            if not decision.allowed:
                return DispatchResult(decision=decision)
        else:
            decision = await self.policy.evaluate_resume(recipient, payload, db_session)
            if not decision.allowed:
                return DispatchResult(decision=decision)
            decision = PolicyDecision(True, "resumed")

        result = await self.fanout.deliver(recipient, payload, db_session)
        return DispatchResult(decision=decision, fanout=result)
