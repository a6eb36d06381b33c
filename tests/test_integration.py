"""Integration tests for the full MatriMatch pipeline.

These tests drive the real services and task handlers, running each queued
task once its delay has passed: daily generation -> notification dispatch ->
e-mail, and a like / like-back pair -> mutual-match notifications.

Note: push and e-mail providers are mocked; Redis is the in-memory stand-in
and the database is SQLite.
"""
import random
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from matrimatch.models.notification import NotificationRecord
from matrimatch.services import state_machine as sm
from matrimatch.services.match_store import MatchStateStore
from matrimatch.services.mutual_match import MutualMatchDetector
from matrimatch.tasks.definitions import GenerateMatchesForUser
from matrimatch.tasks.handlers import build_handlers
from matrimatch.tasks.worker import TaskRunner


@pytest.fixture
def push_service():
    service = AsyncMock()
    service.send_to_member.return_value = True
    return service


@pytest.fixture
def email_service():
    service = AsyncMock()
    service.send_notification_email.return_value = True
    return service


@pytest.fixture
def runner(task_queue, session_factory, fake_redis, clock, settings, push_service, email_service):
    handlers = build_handlers(
        session_factory,
        fake_redis,
        task_queue,
        clock,
        settings=settings,
        push_service=push_service,
        email_service=email_service,
        rng=random.Random(11),
    )
    return TaskRunner(handlers)


async def _drain(runner, task_queue):
    due = task_queue.take_due()
    while due:
        for task in due:
            await runner.execute(task)
        due = task_queue.take_due()


async def _notifications(session_factory, user_id):
    async with session_factory() as session:
        stmt = select(NotificationRecord).where(NotificationRecord.user_id == user_id)
        return list((await session.execute(stmt)).scalars().all())


@pytest.fixture
async def couple(make_member):
    """A seeker and a candidate who fits her stated preferences."""
    seeker = await make_member(
        gender="female",
        age=28,
        preference={"min_age": 25, "max_age": 35, "religions": ["buddhist"], "cities": ["Kandy"]},
    )
    candidate = await make_member(
        gender="male",
        age=29,
        profile={"religion": "Buddhist", "city": "Kandy", "country": "Sri Lanka"},
    )
    return seeker, candidate


class TestWorkedExample:
    """The preference-fit scenario scores in the high band and is notified."""

    async def test_generation_scores_above_seventy(self, runner, task_queue, couple, session_factory):
        seeker, candidate = couple
        await runner.execute(GenerateMatchesForUser(user_id=seeker.id))

        store = MatchStateStore()
        async with session_factory() as session:
            record = await store.get_record(seeker.id, candidate.id, session)
        assert record.status == sm.PENDING
        assert record.compatibility_score == pytest.approx(78.0)
        assert record.compatibility_score > 70
        assert record.sub_scores["age"] == pytest.approx(90.0)
        assert record.sub_scores["religion"] == 100.0

    async def test_new_match_notification_and_email_delivered(
        self, runner, task_queue, couple, clock, settings, session_factory, push_service, email_service
    ):
        seeker, candidate = couple
        await runner.execute(GenerateMatchesForUser(user_id=seeker.id))
        assert len(task_queue.pending) == 1

        clock.advance(seconds=settings.MATCH_NOTIFICATION_DELAY_MAX_SECONDS)
        await _drain(runner, task_queue)

        [notification] = await _notifications(session_factory, seeker.id)
        assert notification.type == "new_match"
        assert notification.data["matched_member_id"] == str(candidate.id)
        assert notification.push_sent_at is not None
        assert notification.email_sent_at is not None
        push_service.send_to_member.assert_awaited_once()
        email_service.send_notification_email.assert_awaited_once()

    async def test_notification_in_quiet_hours_is_dropped(
        self, runner, task_queue, couple, clock, session_factory
    ):
        seeker, _ = couple
        await runner.execute(GenerateMatchesForUser(user_id=seeker.id))

        clock.advance(hours=11)  # 23:00 UTC
        await _drain(runner, task_queue)

        assert await _notifications(session_factory, seeker.id) == []
        assert task_queue.pending == []


class TestMutualFlow:
    """Like, like back, and both members hear about it."""

    async def test_like_back_notifies_both(
        self, runner, task_queue, couple, clock, settings, db_session, session_factory
    ):
        seeker, candidate = couple
        detector = MutualMatchDetector(
            MatchStateStore(clock=clock, settings=settings), task_queue, settings=settings, rng=random.Random(5)
        )

        await detector.record_action(seeker.id, candidate.id, sm.LIKED, db_session)
        outcome = await detector.record_action(candidate.id, seeker.id, sm.LIKED, db_session)
        assert outcome.is_mutual

        clock.advance(seconds=settings.MUTUAL_NOTIFICATION_DELAY_MAX_SECONDS)
        await _drain(runner, task_queue)

        seeker_types = {n.type for n in await _notifications(session_factory, seeker.id)}
        candidate_types = {n.type for n in await _notifications(session_factory, candidate.id)}
        assert seeker_types == {"mutual_match"}
        assert candidate_types == {"interest_expressed", "mutual_match"}
