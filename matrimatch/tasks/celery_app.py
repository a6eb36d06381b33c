"""
MatriMatch — Celery application

Every task kind is routed to its ``TaskSpec.queue``.  Tasks are acknowledged
late (after the body returns), so a worker that dies mid-task leaves the
message for redelivery by the broker; the visibility timeout is longer than
the longest countdown and time limit in use.

Start a worker with::

    celery -A matrimatch.tasks.celery_app worker -Q matching,notifications,emails

and the daily schedule with::

    celery -A matrimatch.tasks.celery_app beat
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from matrimatch.config import get_settings
from matrimatch.tasks.definitions import (
    MATCHING_QUEUE,
    TASK_TYPES,
    ExpireStaleMatches,
    GenerateMatchesForAll,
)

settings = get_settings()

celery_app = Celery(
    "matrimatch",
    broker=settings.celery_broker_url,
    include=["matrimatch.tasks.worker"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    task_ignore_result=True,
    task_acks_late=True,
    task_reject_on_worker_lost=False,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    worker_hijack_root_logger=False,
    task_default_queue=MATCHING_QUEUE,
    task_routes={kind: {"queue": cls.spec.queue} for kind, cls in TASK_TYPES.items()},
    broker_transport_options={"visibility_timeout": settings.CELERY_VISIBILITY_TIMEOUT_SECONDS},
    enable_utc=True,
    timezone="UTC",
    beat_schedule={
        "generate-daily-matches": {
            "task": GenerateMatchesForAll.spec.kind,
            "schedule": crontab(hour=settings.DAILY_GENERATION_HOUR_UTC, minute=0),
            "args": [GenerateMatchesForAll().model_dump(mode="json")],
        },
        "expire-stale-matches": {
            "task": ExpireStaleMatches.spec.kind,
            "schedule": crontab(hour=settings.DAILY_GENERATION_HOUR_UTC, minute=30),
            "args": [ExpireStaleMatches().model_dump(mode="json")],
        },
    },
)
