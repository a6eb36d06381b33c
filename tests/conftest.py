"""Shared pytest fixtures for MatriMatch tests."""
import math
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from matrimatch.config import Settings
from matrimatch.database import Base
from matrimatch.models import Horoscope, Member, Preference, Profile
from matrimatch.tasks.queue import QueuedTask
from matrimatch.utils.clock import FixedClock

# Mid-day UTC, outside the default quiet-hours window.
NOON = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeRedis:
    """In-memory stand-in for the ``redis.asyncio`` commands the code uses.

    Key expiry follows the injected clock so TTL behaviour can be tested by
    advancing it.
    """

    def __init__(self, clock):
        self.clock = clock
        self.values = {}
        self.expires_at = {}

    def _now(self):
        return self.clock.now().timestamp()

    def _purge(self, key):
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= self._now():
            self.values.pop(key, None)
            self.expires_at.pop(key, None)

    async def ping(self):
        return True

    async def get(self, key):
        self._purge(key)
        return self.values.get(key)

    async def set(self, key, value, nx=False, ex=None):
        self._purge(key)
        if nx and key in self.values:
            return None
        self.values[key] = str(value)
        if ex is not None:
            self.expires_at[key] = self._now() + ex
        else:
            self.expires_at.pop(key, None)
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            self._purge(key)
            if self.values.pop(key, None) is not None:
                removed += 1
            self.expires_at.pop(key, None)
        return removed

    async def incr(self, key):
        self._purge(key)
        value = int(self.values.get(key, 0)) + 1
        self.values[key] = str(value)
        return value

    async def expire(self, key, seconds):
        if key not in self.values:
            return False
        self.expires_at[key] = self._now() + seconds
        return True

    async def ttl(self, key):
        self._purge(key)
        if key not in self.values:
            return -2
        if key not in self.expires_at:
            return -1
        return math.ceil(self.expires_at[key] - self._now())


class RecordingTaskQueue:
    """Task queue that records submissions and hands them back once due."""

    def __init__(self, clock):
        self.clock = clock
        self.enqueued = []
        self.pending = []

    async def enqueue(self, task, delay_seconds=0):
        self.enqueued.append((task, delay_seconds))
        run_at = self.clock.now() + timedelta(seconds=max(delay_seconds, 0))
        self.pending.append((run_at, task))
        return QueuedTask(id=uuid.uuid4().hex, kind=task.spec.kind, queue=task.spec.queue, run_at=run_at)

    def take_due(self):
        now = self.clock.now()
        due = sorted((p for p in self.pending if p[0] <= now), key=lambda p: p[0])
        self.pending = [p for p in self.pending if p[0] > now]
        return [task for _, task in due]

    def of_kind(self, task_cls):
        return [(t, d) for t, d in self.enqueued if isinstance(t, task_cls)]


@pytest.fixture
def clock():
    return FixedClock(NOON)


@pytest.fixture
def settings():
    return Settings(FCM_SERVER_KEY="", MAIL_API_URL="")


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def task_queue(clock):
    return RecordingTaskQueue(clock)


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


def birth_date_for(age, today):
    """Birth date giving exactly ``age`` on ``today``."""
    return date(today.year - age, 1, 1)


@pytest.fixture
def make_member(db_session, clock):
    """Factory persisting a Member with optional profile, preference and horoscope.

    Defaults describe an eligible, recently active member.
    """

    async def _make(
        *,
        gender="female",
        age=30,
        profile=None,
        preference=None,
        horoscope=None,
        **fields,
    ):
        member_id = fields.pop("id", None) or uuid.uuid4()
        defaults = dict(
            id=member_id,
            email=f"{member_id.hex[:12]}@example.com",
            display_name=fields.pop("display_name", f"Member {member_id.hex[:6]}"),
            gender=gender,
            birth_date=birth_date_for(age, clock.today()) if age is not None else None,
            account_status="active",
            profile_status="approved",
            profile_completion=80,
            is_premium=False,
            is_verified=False,
            timezone="UTC",
            last_active_at=clock.now(),
            notifications_enabled=True,
            push_notifications=True,
            email_notifications=True,
            created_at=clock.now(),
        )
        defaults.update(fields)
        member = Member(**defaults)
        member.profile = Profile(**(profile or {}))
        member.preference = Preference(**preference) if preference is not None else None
        member.horoscope = Horoscope(**horoscope) if horoscope is not None else None
        db_session.add(member)
        await db_session.commit()
        return member

    return _make
