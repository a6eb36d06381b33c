"""
MatriMatch — Celery task bodies

One Celery task per task kind, configured from the kind's ``TaskSpec``:
``max_retries`` from ``max_attempts``, a soft time limit from
``timeout_seconds`` and a hard limit a little above it.  Each body validates
its pydantic model, runs the async handler on the worker process's event
loop and applies the retry policy:

  * ``InputError`` or an invalid body → rejected; logged, never retried
  * any other exception (soft time limit included) → ``self.retry`` after
    ``TaskSpec.backoff_for(attempt)`` until ``max_attempts`` is used up,
    then logged at the kind's ``failure_level`` and re-raised
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Mapping

import structlog
from celery import Task as CeleryTask
from celery.signals import worker_process_init, worker_process_shutdown
from pydantic import ValidationError

from matrimatch.config import get_settings
from matrimatch.database import async_session_factory, engine
from matrimatch.errors import InputError
from matrimatch.redis_client import close_redis, connect_redis
from matrimatch.tasks.celery_app import celery_app
from matrimatch.tasks.definitions import (
    TASK_TYPES,
    ExpireStaleMatches,
    GenerateMatchesForAll,
    GenerateMatchesForUser,
    SendMatchNotification,
    SendMessageNotification,
    SendNotificationEmail,
    Task,
    TaskSpec,
)
from matrimatch.tasks.handlers import build_handlers
from matrimatch.tasks.queue import CeleryTaskQueue
from matrimatch.utils.clock import SystemClock
from matrimatch.utils.logging import configure_logging

logger = structlog.get_logger("matrimatch.tasks.worker")

Handler = Callable[[Task], Awaitable[object]]


class TaskRunner:
    """Runs a typed task with the handler registered for its kind."""

    def __init__(self, handlers: Mapping[str, Handler]) -> None:
        missing = set(TASK_TYPES) - set(handlers)
        if missing:
            raise ValueError(f"No handler registered for task kinds: {sorted(missing)}")
        self.handlers = dict(handlers)

    async def execute(self, task: Task) -> object:
        return await self.handlers[task.spec.kind](task)


# ── Per-process runtime ───────────────────────────────────────────────────────

_runner: TaskRunner | None = None
_loop: asyncio.AbstractEventLoop | None = None


def install_runner(runner: TaskRunner | None) -> None:
    """Set the runner used by every task body in this process."""
    global _runner
    _runner = runner


def _event_loop() -> asyncio.AbstractEventLoop:
    # One loop per process: pooled DB and Redis connections are bound to it.
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


async def _bootstrap() -> TaskRunner:
    settings = get_settings()
    clock = SystemClock()
    redis = await connect_redis(settings.REDIS_URL)
    queue = CeleryTaskQueue(celery_app, clock)
    return TaskRunner(build_handlers(async_session_factory, redis, queue, clock, settings))


async def _teardown() -> None:
    await close_redis()
    await engine.dispose()


def _get_runner() -> TaskRunner:
    if _runner is None:
        install_runner(_event_loop().run_until_complete(_bootstrap()))
    return _runner


@worker_process_init.connect
def _init_worker_process(**_) -> None:
    configure_logging(get_settings().LOG_LEVEL)
    _get_runner()


@worker_process_shutdown.connect
def _shutdown_worker_process(**_) -> None:
    if _loop is None or _loop.is_closed():
        return
    _loop.run_until_complete(_teardown())
    _loop.close()


# ── Task bodies ───────────────────────────────────────────────────────────────


def _options(spec: TaskSpec) -> dict:
    return {
        "name": spec.kind,
        "bind": True,
        "queue": spec.queue,
        "max_retries": spec.max_attempts - 1,
        "acks_late": True,
        "soft_time_limit": spec.timeout_seconds,
        "time_limit": spec.timeout_seconds + get_settings().TASK_TIME_LIMIT_GRACE_SECONDS,
    }


def _run(celery_task: CeleryTask, task_cls: type[Task], body: dict) -> object:
    spec = task_cls.spec
    attempt = celery_task.request.retries + 1
    log = logger.bind(
        task_id=celery_task.request.id,
        kind=spec.kind,
        attempt=attempt,
        max_attempts=spec.max_attempts,
    )

    try:
        task = task_cls.model_validate(body)
        runner = _get_runner()
        result = _event_loop().run_until_complete(runner.execute(task))
    except (InputError, ValidationError) as exc:
        log.warning("task_rejected", error=str(exc), error_type=type(exc).__name__)
        return None
    except Exception as exc:
        error = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        if attempt < spec.max_attempts:
            delay = spec.backoff_for(attempt)
            log.warning("task_retry_scheduled", error=error, delay_seconds=delay)
            raise celery_task.retry(exc=exc, countdown=delay)
        getattr(log, spec.failure_level)("task_failed_permanently", error=error, payload=body)
        raise

    summary = _summarise(result)
    log.info("task_completed", result=summary)
    return summary


@celery_app.task(**_options(GenerateMatchesForUser.spec))
def generate_matches_for_user(self, body: dict):
    return _run(self, GenerateMatchesForUser, body)


@celery_app.task(**_options(GenerateMatchesForAll.spec))
def generate_matches_for_all(self, body: dict):
    return _run(self, GenerateMatchesForAll, body)


@celery_app.task(**_options(SendMatchNotification.spec))
def send_match_notification(self, body: dict):
    return _run(self, SendMatchNotification, body)


@celery_app.task(**_options(SendMessageNotification.spec))
def send_message_notification(self, body: dict):
    return _run(self, SendMessageNotification, body)


@celery_app.task(**_options(SendNotificationEmail.spec))
def send_notification_email(self, body: dict):
    return _run(self, SendNotificationEmail, body)


@celery_app.task(**_options(ExpireStaleMatches.spec))
def expire_stale_matches(self, body: dict):
    return _run(self, ExpireStaleMatches, body)


def _summarise(result: object) -> object:
    if result is None or isinstance(result, (bool, int, float, str)):
        return result
    return type(result).__name__
