"""
MatriMatch — Task handlers

Wires the domain services into one async callable per task kind.  Each
handler opens its own database session; the worker owns retries.
"""

from __future__ import annotations

import random

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matrimatch.config import Settings, get_settings
from matrimatch.errors import MemberNotFoundError, NotificationNotFoundError
from matrimatch.models.member import Member
from matrimatch.models.notification import NotificationRecord
from matrimatch.services.email_service import EmailService
from matrimatch.services.match_generation import DailyMatchGenerator
from matrimatch.services.match_store import MatchStateStore
from matrimatch.services.notification_fanout import NotificationDispatcher, NotificationFanout
from matrimatch.services.notification_policy import NotificationDispatchPolicy
from matrimatch.services.push_service import PushNotificationService
from matrimatch.services.score_cache import ScoreCache
from matrimatch.services.scoring_service import CompatibilityScorer
from matrimatch.tasks.definitions import (
    ExpireStaleMatches,
    GenerateMatchesForAll,
    GenerateMatchesForUser,
    SendMatchNotification,
    SendMessageNotification,
    SendNotificationEmail,
)
from matrimatch.tasks.queue import TaskQueue
from matrimatch.utils.clock import Clock

logger = structlog.get_logger("matrimatch.tasks.handlers")


def build_generator(
    session_factory: async_sessionmaker[AsyncSession],
    redis,
    task_queue: TaskQueue,
    clock: Clock,
    settings: Settings | None = None,
    rng: random.Random | None = None,
) -> DailyMatchGenerator:
    settings = settings or get_settings()
    return DailyMatchGenerator(
        scorer=CompatibilityScorer(settings=settings),
        match_store=MatchStateStore(clock=clock, settings=settings),
        score_cache=ScoreCache(redis, clock),
        redis=redis,
        task_queue=task_queue,
        clock=clock,
        session_factory=session_factory,
        settings=settings,
        rng=rng,
    )


def build_handlers(
    session_factory: async_sessionmaker[AsyncSession],
    redis,
    task_queue: TaskQueue,
    clock: Clock,
    settings: Settings | None = None,
    push_service: PushNotificationService | None = None,
    email_service: EmailService | None = None,
    rng: random.Random | None = None,
) -> dict:
    """Return ``{task kind: handler}`` for every registered task kind."""
    settings = settings or get_settings()
    match_store = MatchStateStore(clock=clock, settings=settings)
    generator = build_generator(session_factory, redis, task_queue, clock, settings, rng)
    dispatcher = NotificationDispatcher(
        NotificationDispatchPolicy(redis, clock, match_store=match_store, settings=settings),
        NotificationFanout(push_service or PushNotificationService(settings), task_queue, clock),
    )
    email_service = email_service or EmailService(settings)

    async def generate_for_user(task: GenerateMatchesForUser):
        async with session_factory() as session:
            return await generator.generate_for_user(task.user_id, session, task.limit)

    async def generate_for_all(task: GenerateMatchesForAll):
        return await generator.generate_for_all(task.chunk_size, task.limit)

    async def send_notification(task: SendMatchNotification | SendMessageNotification):
        async with session_factory() as session:
            result = await dispatcher.dispatch(task.recipient_id, task.payload, session)
        return result.decision.reason

    async def send_email(task: SendNotificationEmail):
        async with session_factory() as session:
            notification = await session.get(NotificationRecord, task.notification_id)
            if notification is None:
                raise NotificationNotFoundError(task.notification_id)
            if notification.email_sent_at is not None:
                logger.info("email_already_sent", notification_id=str(notification.id))
                return False
            member = await session.get(Member, notification.user_id)
            if member is None:
                raise MemberNotFoundError(notification.user_id)
            sent = await email_service.send_notification_email(member, notification)
            if sent:
                notification.email_sent_at = clock.now()
                await session.commit()
            return sent

    async def expire_stale(task: ExpireStaleMatches):
        async with session_factory() as session:
            count = await match_store.expire_stale(session)
            await session.commit()
            return count

    return {
        GenerateMatchesForUser.spec.kind: generate_for_user,
        GenerateMatchesForAll.spec.kind: generate_for_all,
        SendMatchNotification.spec.kind: send_notification,
        SendMessageNotification.spec.kind: send_notification,
        SendNotificationEmail.spec.kind: send_email,
        ExpireStaleMatches.spec.kind: expire_stale,
    }
