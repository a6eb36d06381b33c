"""Tests for DailyMatchGenerator — per-member runs and the all-members batch."""
import random
import uuid
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from matrimatch.errors import MemberNotFoundError, ProfileIncompleteError
from matrimatch.services import state_machine as sm
from matrimatch.services.match_generation import (
    DailyMatchGenerator,
    filter_blocked_users,
    marker_key,
)
from matrimatch.services.match_store import MatchStateStore
from matrimatch.services.score_cache import ScoreCache
from matrimatch.services.scoring_service import CompatibilityScorer
from matrimatch.tasks.definitions import GenerateMatchesForAll, SendMatchNotification


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def generator(clock, settings, fake_redis, task_queue, session_factory, sleep):
    return DailyMatchGenerator(
        scorer=CompatibilityScorer(settings=settings),
        match_store=MatchStateStore(clock=clock, settings=settings),
        score_cache=ScoreCache(fake_redis, clock),
        redis=fake_redis,
        task_queue=task_queue,
        clock=clock,
        session_factory=session_factory,
        settings=settings,
        sleep=sleep,
        rng=random.Random(3),
    )


async def _candidates(make_member, count, **kwargs):
    return [await make_member(gender="male", **kwargs) for _ in range(count)]


class TestFilterBlockedUsers:
    """The pure blocked-user filter."""

    def test_removes_blocked_and_keeps_order(self):
        ids = [uuid.uuid4() for _ in range(4)]
        people = [SimpleNamespace(id=i) for i in ids]
        kept = filter_blocked_users(people, {ids[1], ids[3]})
        assert [p.id for p in kept] == [ids[0], ids[2]]

    def test_empty_block_list_keeps_everyone(self):
        people = [SimpleNamespace(id=uuid.uuid4()) for _ in range(3)]
        assert filter_blocked_users(people, set()) == people


class TestGenerateForUser:
    """One member's daily run."""

    async def test_unknown_member(self, generator, db_session):
        with pytest.raises(MemberNotFoundError):
            await generator.generate_for_user(uuid.uuid4(), db_session)

    async def test_incomplete_profile_rejected(self, generator, db_session, make_member):
        seeker = await make_member(profile_completion=10)
        with pytest.raises(ProfileIncompleteError) as excinfo:
            await generator.generate_for_user(seeker.id, db_session)
        assert "10%" in excinfo.value.reason

    async def test_suspended_account_rejected(self, generator, db_session, make_member):
        seeker = await make_member(account_status="suspended")
        with pytest.raises(ProfileIncompleteError):
            await generator.generate_for_user(seeker.id, db_session)

    async def test_free_member_gets_tier_limit(self, generator, db_session, make_member, settings):
        seeker = await make_member()
        await _candidates(make_member, settings.FREE_DAILY_MATCH_LIMIT + 2)

        result = await generator.generate_for_user(seeker.id, db_session)

        assert not result.skipped
        assert result.candidates_scored == settings.FREE_DAILY_MATCH_LIMIT + 2
        assert result.matches_stored == settings.FREE_DAILY_MATCH_LIMIT
        records = await generator.match_store.list_for_member(seeker.id, db_session)
        assert len(records) == settings.FREE_DAILY_MATCH_LIMIT
        assert all(r.match_type == "daily_suggestion" for r in records)

    async def test_premium_member_gets_everyone(self, generator, db_session, make_member, clock):
        seeker = await make_member(is_premium=True, premium_expires_at=clock.now() + timedelta(days=30))
        await _candidates(make_member, 7)

        result = await generator.generate_for_user(seeker.id, db_session)

        assert result.matches_stored == 7
        records = await generator.match_store.list_for_member(seeker.id, db_session)
        assert all(r.match_type == "premium_suggestion" for r in records)

    async def test_explicit_limit_overrides_tier(self, generator, db_session, make_member):
        seeker = await make_member()
        await _candidates(make_member, 4)
        result = await generator.generate_for_user(seeker.id, db_session, limit=2)
        assert result.matches_stored == 2

    async def test_same_gender_and_self_not_candidates(self, generator, db_session, make_member):
        seeker = await make_member()
        await make_member(gender="female")
        result = await generator.generate_for_user(seeker.id, db_session)
        assert result.candidates_scored == 0

    async def test_preferred_genders_respected(self, generator, db_session, make_member):
        seeker = await make_member(preference={"preferred_genders": ["Female"]})
        await make_member(gender="female")
        await make_member(gender="male")
        result = await generator.generate_for_user(seeker.id, db_session)
        assert result.candidates_scored == 1

    async def test_second_run_same_day_is_skipped(self, generator, db_session, make_member, task_queue):
        seeker = await make_member()
        await _candidates(make_member, 3)

        first = await generator.generate_for_user(seeker.id, db_session)
        queued = len(task_queue.enqueued)
        second = await generator.generate_for_user(seeker.id, db_session)

        assert not first.skipped
        assert second.skipped
        assert second.reason == "already_generated_today"
        assert len(task_queue.enqueued) == queued

    async def test_next_day_runs_again(self, generator, db_session, make_member, clock):
        seeker = await make_member()
        await _candidates(make_member, 2)
        await generator.generate_for_user(seeker.id, db_session)

        clock.advance(days=1)
        result = await generator.generate_for_user(seeker.id, db_session)

        assert not result.skipped
        assert result.matches_stored == 2

    async def test_resuggestion_on_a_later_day_is_a_new_event(
        self, generator, db_session, make_member, clock, task_queue
    ):
        seeker = await make_member()
        await _candidates(make_member, 1)
        await generator.generate_for_user(seeker.id, db_session)
        clock.advance(days=1)
        await generator.generate_for_user(seeker.id, db_session)

        [(first, _), (second, _)] = task_queue.of_kind(SendMatchNotification)
        assert first.payload.match_id == second.payload.match_id
        assert second.payload.suggested_on == clock.today()
        assert first.payload.event_key() != second.payload.event_key()

    async def test_preferred_age_range_applied_to_pool(self, generator, db_session, make_member):
        seeker = await make_member(preference={"min_age": 25, "max_age": 35})
        await make_member(gender="male", age=24)
        in_range = await make_member(gender="male", age=35)
        await make_member(gender="male", age=36)
        unknown_age = await make_member(gender="male", age=None)

        result = await generator.generate_for_user(seeker.id, db_session)

        assert result.candidates_scored == 2
        records = await generator.match_store.list_for_member(seeker.id, db_session)
        assert {r.candidate_id for r in records} == {in_range.id, unknown_age.id}

    async def test_blocked_candidate_excluded_both_directions(self, generator, db_session, make_member):
        seeker = await make_member()
        blocked_by_seeker, blocker, fine = await _candidates(make_member, 3)
        store = generator.match_store
        await store.record_action(seeker.id, blocked_by_seeker.id, sm.BLOCKED, db_session)
        await store.record_action(blocker.id, seeker.id, sm.BLOCKED, db_session)
        await db_session.commit()

        await generator.generate_for_user(seeker.id, db_session)

        records = await store.list_for_member(seeker.id, db_session, status=sm.PENDING)
        assert [r.candidate_id for r in records] == [fine.id]

    async def test_acted_on_candidate_not_resuggested(self, generator, db_session, make_member):
        seeker = await make_member()
        liked, fresh = await _candidates(make_member, 2)
        await generator.match_store.record_action(seeker.id, liked.id, sm.LIKED, db_session)
        await db_session.commit()

        result = await generator.generate_for_user(seeker.id, db_session)

        assert result.candidates_scored == 1
        records = await generator.match_store.list_for_member(seeker.id, db_session, status=sm.PENDING)
        assert [r.candidate_id for r in records] == [fresh.id]

    async def test_deal_breaker_violation_excluded(self, generator, db_session, make_member):
        seeker = await make_member(
            preference={"religions": ["hindu"], "deal_breakers": ["religion"]},
        )
        await make_member(gender="male", profile={"religion": "christian"})
        ok = await make_member(gender="male", profile={"religion": "hindu"})

        result = await generator.generate_for_user(seeker.id, db_session)

        assert result.matches_stored == 1
        records = await generator.match_store.list_for_member(seeker.id, db_session)
        assert [r.candidate_id for r in records] == [ok.id]

    async def test_ranked_by_composite(self, generator, db_session, make_member):
        seeker = await make_member(preference={"religions": ["hindu"]})
        low = await make_member(gender="male", profile={"religion": "christian"})
        high = await make_member(gender="male", profile={"religion": "hindu"})

        await generator.generate_for_user(seeker.id, db_session, limit=1)

        records = await generator.match_store.list_for_member(seeker.id, db_session)
        assert [r.candidate_id for r in records] == [high.id]
        assert low.id not in {r.candidate_id for r in records}

    async def test_top_three_notified_with_delays(
        self, generator, db_session, make_member, task_queue, settings
    ):
        seeker = await make_member()
        await _candidates(make_member, 5)

        result = await generator.generate_for_user(seeker.id, db_session)

        tasks = task_queue.of_kind(SendMatchNotification)
        assert result.notifications_enqueued == 3
        assert len(tasks) == 3
        for task, delay in tasks:
            assert task.recipient_id == seeker.id
            assert task.payload.type == "new_match"
            assert settings.MATCH_NOTIFICATION_DELAY_MIN_SECONDS <= delay
            assert delay <= settings.MATCH_NOTIFICATION_DELAY_MAX_SECONDS

    async def test_last_generated_timestamp_recorded(self, generator, db_session, make_member, clock):
        seeker = await make_member()
        await generator.generate_for_user(seeker.id, db_session)
        await db_session.refresh(seeker)
        assert seeker.last_matches_generated_at is not None

    async def test_failure_releases_marker(self, generator, db_session, make_member, fake_redis, clock):
        seeker = await make_member()
        seeker_id = seeker.id
        await _candidates(make_member, 2)
        generator.match_store.upsert_pending = AsyncMock(side_effect=RuntimeError("db down"))

        with pytest.raises(RuntimeError):
            await generator.generate_for_user(seeker_id, db_session)

        assert await fake_redis.get(marker_key(seeker_id, clock.today())) is None

    async def test_scores_cached_for_the_day(self, generator, db_session, make_member, fake_redis):
        seeker = await make_member()
        [candidate] = await _candidates(make_member, 1)
        await generator.generate_for_user(seeker.id, db_session)
        assert await generator.score_cache.get(seeker.id, candidate.id) is not None


class TestGenerateForAll:
    """The chunked all-members batch."""

    async def test_processes_every_eligible_member(self, generator, make_member, sleep):
        await make_member()
        await make_member(gender="male")
        await make_member(gender="male")
        await make_member(profile_completion=5)

        summary = await generator.generate_for_all(chunk_size=2)

        assert summary.processed == 3
        assert summary.generated == 3
        assert summary.failed == 0
        assert summary.chunks == 2
        assert sleep.await_count == 3

    async def test_one_failure_does_not_stop_the_batch(self, generator, make_member):
        bad = await make_member()
        bad_id = bad.id
        await make_member(gender="male")
        await make_member(gender="male")

        original = generator._generate

        async def flaky(member, db_session, limit, now):
            if member.id == bad_id:
                raise RuntimeError("boom")
            return await original(member, db_session, limit, now)

        generator._generate = flaky
        summary = await generator.generate_for_all(chunk_size=10)

        assert summary.processed == 3
        assert summary.failed == 1
        assert summary.generated == 2

    async def test_task_default_chunk_size_comes_from_settings(self, generator, make_member, settings):
        settings.GENERATION_CHUNK_SIZE = 2
        await make_member()
        await make_member(gender="male")
        await make_member(gender="male")

        summary = await generator.generate_for_all(GenerateMatchesForAll().chunk_size)

        assert summary.processed == 3
        assert summary.chunks == 2

    async def test_rerun_same_day_skips_everyone(self, generator, make_member):
        await make_member()
        await make_member(gender="male")
        await generator.generate_for_all()
        summary = await generator.generate_for_all()
        assert summary.skipped == 2
        assert summary.generated == 0

    async def test_requires_session_factory(self, generator):
        generator.session_factory = None
        with pytest.raises(RuntimeError):
            await generator.generate_for_all()
