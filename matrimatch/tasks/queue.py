"""
MatriMatch — Task submission

Services depend on the small ``TaskQueue`` protocol.  ``CeleryTaskQueue``
publishes a task's JSON body to the broker under its kind's name, on its
kind's queue, with an optional countdown.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import structlog
from celery import Celery

from matrimatch.tasks.definitions import Task
from matrimatch.utils.clock import Clock

logger = structlog.get_logger("matrimatch.tasks.queue")


@dataclass(frozen=True)
class QueuedTask:
    id: str
    kind: str
    queue: str
    run_at: datetime


class TaskQueue(Protocol):
    async def enqueue(self, task: Task, delay_seconds: float = 0) -> QueuedTask: ...


class CeleryTaskQueue:
    def __init__(self, app: Celery, clock: Clock) -> None:
        self.app = app
        self.clock = clock

    async def enqueue(self, task: Task, delay_seconds: float = 0) -> QueuedTask:
        spec = task.spec
        result = self.app.send_task(
            spec.kind,
            args=[task.model_dump(mode="json")],
            queue=spec.queue,
            countdown=delay_seconds if delay_seconds > 0 else None,
        )
        queued = QueuedTask(
            id=result.id,
            kind=spec.kind,
            queue=spec.queue,
            run_at=self.clock.now() + timedelta(seconds=max(delay_seconds, 0)),
        )
        logger.info(
            "task_enqueued",
            task_id=queued.id,
            kind=queued.kind,
            queue=queued.queue,
            delay_seconds=delay_seconds,
        )
        return queued
