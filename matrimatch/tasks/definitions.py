"""
MatriMatch — Task kinds

One pydantic model per task kind.  Each kind carries a ``TaskSpec`` with its
queue, retry budget, backoff schedule, timeout and the log level used when
retries are exhausted.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import ClassVar

from pydantic import BaseModel, Field

from matrimatch.schemas.notification import MessagePayload, NotificationPayload

MATCHING_QUEUE = "matching"
NOTIFICATIONS_QUEUE = "notifications"
EMAILS_QUEUE = "emails"


@dataclass(frozen=True)
class TaskSpec:
    kind: str
    queue: str
    max_attempts: int
    backoff_seconds: tuple[int, ...]
    timeout_seconds: float
    failure_level: str = "error"

    def backoff_for(self, attempt: int) -> int:
        """Delay before retrying after failed ``attempt`` (1-based)."""
        if not self.backoff_seconds:
            return 0
        index = min(attempt - 1, len(self.backoff_seconds) - 1)
        return self.backoff_seconds[index]


class Task(BaseModel):
    spec: ClassVar[TaskSpec]


class GenerateMatchesForUser(Task):
    spec: ClassVar[TaskSpec] = TaskSpec(
        kind="generate_matches_for_user",
        queue=MATCHING_QUEUE,
        max_attempts=2,
        backoff_seconds=(300, 900),
        timeout_seconds=300,
    )

    user_id: uuid.UUID
    limit: int | None = Field(default=None, ge=1)


class GenerateMatchesForAll(Task):
    spec: ClassVar[TaskSpec] = TaskSpec(
        kind="generate_matches_for_all",
        queue=MATCHING_QUEUE,
        max_attempts=2,
        backoff_seconds=(300, 900),
        timeout_seconds=3600,
        failure_level="critical",
    )

    chunk_size: int | None = Field(default=None, ge=1)  # None: GENERATION_CHUNK_SIZE
    limit: int | None = Field(default=None, ge=1)


class SendMatchNotification(Task):
    spec: ClassVar[TaskSpec] = TaskSpec(
        kind="send_match_notification",
        queue=NOTIFICATIONS_QUEUE,
        max_attempts=3,
        backoff_seconds=(30, 120, 300),
        timeout_seconds=60,
    )

    recipient_id: uuid.UUID
    payload: NotificationPayload


class SendMessageNotification(Task):
    spec: ClassVar[TaskSpec] = TaskSpec(
        kind="send_message_notification",
        queue=NOTIFICATIONS_QUEUE,
        max_attempts=3,
        backoff_seconds=(10, 30, 60),
        timeout_seconds=30,
    )

    recipient_id: uuid.UUID
    payload: MessagePayload


class SendNotificationEmail(Task):
    spec: ClassVar[TaskSpec] = TaskSpec(
        kind="send_notification_email",
        queue=EMAILS_QUEUE,
        max_attempts=3,
        backoff_seconds=(60, 300, 900),
        timeout_seconds=30,
    )

    notification_id: uuid.UUID


class ExpireStaleMatches(Task):
    spec: ClassVar[TaskSpec] = TaskSpec(
        kind="expire_stale_matches",
        queue=MATCHING_QUEUE,
        max_attempts=1,
        backoff_seconds=(),
        timeout_seconds=300,
    )


TASK_TYPES: dict[str, type[Task]] = {
    cls.spec.kind: cls
    for cls in (
        GenerateMatchesForUser,
        GenerateMatchesForAll,
        SendMatchNotification,
        SendMessageNotification,
        SendNotificationEmail,
        ExpireStaleMatches,
    )
}
