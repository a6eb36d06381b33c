"""Tests for the Celery task bodies and their retry policy.

Tasks run eagerly through ``Task.apply``; a retry re-runs the body in place
with ``request.retries`` incremented.
"""
import uuid
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from matrimatch.errors import MemberNotFoundError
from matrimatch.tasks.celery_app import celery_app
from matrimatch.tasks.definitions import (
    TASK_TYPES,
    GenerateMatchesForAll,
    GenerateMatchesForUser,
    SendMatchNotification,
)
from matrimatch.tasks.worker import (
    TaskRunner,
    generate_matches_for_all,
    generate_matches_for_user,
    install_runner,
    send_match_notification,
)


@pytest.fixture
def handlers():
    return {kind: AsyncMock(return_value=None) for kind in TASK_TYPES}


@pytest.fixture(autouse=True)
def runner(handlers):
    runner = TaskRunner(handlers)
    install_runner(runner)
    yield runner
    install_runner(None)


def _notification_body():
    return {
        "recipient_id": str(uuid.uuid4()),
        "payload": {
            "type": "new_match",
            "actor_id": str(uuid.uuid4()),
            "actor_name": "Asha",
            "match_id": str(uuid.uuid4()),
            "compatibility_score": 80.0,
            "suggested_on": "2026-03-10",
        },
    }


class TestTaskRunner:

    def test_missing_handler_rejected(self, handlers):
        del handlers[GenerateMatchesForAll.spec.kind]
        with pytest.raises(ValueError):
            TaskRunner(handlers)


class TestTaskBodies:
    """Success, rejection, retry and exhaustion."""

    def test_success_runs_handler_with_typed_task(self, handlers):
        task = GenerateMatchesForUser(user_id=uuid.uuid4(), limit=2)

        result = generate_matches_for_user.apply(args=[task.model_dump(mode="json")])

        assert result.successful()
        handlers[GenerateMatchesForUser.spec.kind].assert_awaited_once_with(task)

    def test_input_error_not_retried(self, handlers):
        handler = handlers[GenerateMatchesForUser.spec.kind]
        handler.side_effect = MemberNotFoundError("x")

        with capture_logs() as logs:
            result = generate_matches_for_user.apply(args=[{"user_id": str(uuid.uuid4())}])

        assert result.successful()
        assert handler.await_count == 1
        assert any(entry["event"] == "task_rejected" for entry in logs)

    def test_invalid_body_rejected_without_running(self, handlers):
        with capture_logs() as logs:
            result = generate_matches_for_user.apply(args=[{"user_id": "not-a-uuid"}])

        assert result.successful()
        handlers[GenerateMatchesForUser.spec.kind].assert_not_awaited()
        [rejected] = [entry for entry in logs if entry["event"] == "task_rejected"]
        assert rejected["error_type"] == "ValidationError"

    def test_transient_failure_retried_with_backoff(self, handlers):
        handler = handlers[SendMatchNotification.spec.kind]
        handler.side_effect = [RuntimeError("fcm down"), None]

        with capture_logs() as logs:
            result = send_match_notification.apply(args=[_notification_body()])

        assert result.successful()
        assert handler.await_count == 2
        [retry] = [entry for entry in logs if entry["event"] == "task_retry_scheduled"]
        assert retry["delay_seconds"] == SendMatchNotification.spec.backoff_for(1)
        assert retry["error"] == "RuntimeError: fcm down"

    def test_exhausted_batch_logged_critical(self, handlers):
        spec = GenerateMatchesForAll.spec
        handlers[spec.kind].side_effect = RuntimeError("db down")

        with capture_logs() as logs:
            result = generate_matches_for_all.apply(args=[{}])

        assert result.failed()
        assert handlers[spec.kind].await_count == spec.max_attempts
        [failure] = [entry for entry in logs if entry["event"] == "task_failed_permanently"]
        assert failure["log_level"] == "critical"
        assert failure["attempt"] == spec.max_attempts


class TestCeleryConfiguration:
    """Each kind's Celery options come from its TaskSpec."""

    def test_every_kind_registered(self):
        assert set(TASK_TYPES) <= set(celery_app.tasks)

    def test_options_follow_spec(self):
        spec = GenerateMatchesForAll.spec
        assert generate_matches_for_all.name == spec.kind
        assert generate_matches_for_all.queue == spec.queue
        assert generate_matches_for_all.max_retries == spec.max_attempts - 1
        assert generate_matches_for_all.soft_time_limit == spec.timeout_seconds
        assert generate_matches_for_all.time_limit > spec.timeout_seconds
        assert generate_matches_for_all.acks_late is True

    def test_routes_by_kind(self):
        routes = celery_app.conf.task_routes
        assert routes["send_notification_email"] == {"queue": "emails"}
        assert routes["send_message_notification"] == {"queue": "notifications"}
        assert routes["expire_stale_matches"] == {"queue": "matching"}

    def test_daily_schedule(self):
        schedule = celery_app.conf.beat_schedule
        generate = schedule["generate-daily-matches"]
        assert generate["task"] == "generate_matches_for_all"
        assert generate["schedule"].hour == {6}
        assert generate["schedule"].minute == {0}
        assert schedule["expire-stale-matches"]["schedule"].minute == {30}
