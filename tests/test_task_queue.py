"""Tests for CeleryTaskQueue submission."""
import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from matrimatch.tasks.definitions import GenerateMatchesForUser, SendMatchNotification
from matrimatch.tasks.queue import CeleryTaskQueue


@pytest.fixture
def app():
    celery = MagicMock()
    celery.send_task.return_value.id = "task-1"
    return celery


@pytest.fixture
def queue(app, clock):
    return CeleryTaskQueue(app, clock)


def _mutual_task():
    return SendMatchNotification.model_validate(
        {
            "recipient_id": str(uuid.uuid4()),
            "payload": {
                "type": "mutual_match",
                "actor_id": str(uuid.uuid4()),
                "actor_name": "Asha",
                "match_id": str(uuid.uuid4()),
            },
        }
    )


class TestCeleryTaskQueue:
    """Routing, countdown and the returned receipt."""

    async def test_immediate_task_sent_to_its_queue(self, queue, app, clock):
        task = GenerateMatchesForUser(user_id=uuid.uuid4(), limit=4)

        queued = await queue.enqueue(task)

        app.send_task.assert_called_once_with(
            "generate_matches_for_user",
            args=[task.model_dump(mode="json")],
            queue="matching",
            countdown=None,
        )
        assert queued.id == "task-1"
        assert queued.kind == "generate_matches_for_user"
        assert queued.run_at == clock.now()

    async def test_delay_becomes_countdown(self, queue, app, clock):
        queued = await queue.enqueue(_mutual_task(), delay_seconds=90)

        kwargs = app.send_task.call_args.kwargs
        assert kwargs["queue"] == "notifications"
        assert kwargs["countdown"] == 90
        assert queued.run_at == clock.now() + timedelta(seconds=90)

    async def test_body_is_json_and_validates_back(self, queue, app):
        task = _mutual_task()
        await queue.enqueue(task)

        [body] = app.send_task.call_args.kwargs["args"]
        assert isinstance(body["recipient_id"], str)
        restored = SendMatchNotification.model_validate(body)
        assert restored.payload.event_key() == task.payload.event_key()
