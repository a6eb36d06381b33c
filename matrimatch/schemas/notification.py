"""
MatriMatch — Notification payloads

One pydantic model per ``NotificationType``, discriminated on ``type`` so a
task body deserialises straight into the right variant.  ``actor_id`` is
always the other member the notification is about.
"""

from __future__ import annotations

import enum
import uuid
from abc import abstractmethod
from datetime import date
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class NotificationType(str, enum.Enum):
    NEW_MATCH = "new_match"
    MUTUAL_MATCH = "mutual_match"
    SUPER_LIKE = "super_like"
    PROFILE_VIEW = "profile_view"
    INTEREST_EXPRESSED = "interest_expressed"
    MESSAGE = "message"


# Types that bypass quiet hours.
URGENT_TYPES = frozenset({NotificationType.MUTUAL_MATCH, NotificationType.SUPER_LIKE})

# Types that also go out by e-mail.
EMAIL_TYPES = frozenset({NotificationType.NEW_MATCH, NotificationType.MUTUAL_MATCH})


class _Payload(BaseModel):
    actor_id: uuid.UUID
    actor_name: str

    @property
    def notification_type(self) -> NotificationType:
        return NotificationType(self.type)  # type: ignore[attr-defined]

    @abstractmethod
    def event_key(self) -> str:
        """Idempotency key of the event this payload announces."""


class NewMatchPayload(_Payload):
    type: Literal["new_match"] = "new_match"
    match_id: uuid.UUID
    compatibility_score: float
    suggested_on: date

    def event_key(self) -> str:
        # A pair re-suggested on a later day is a new event.
        return f"new_match:{self.match_id}:{self.suggested_on.isoformat()}"


class MutualMatchPayload(_Payload):
    type: Literal["mutual_match"] = "mutual_match"
    match_id: uuid.UUID

    def event_key(self) -> str:
        return f"mutual_match:{self.match_id}"


class SuperLikePayload(_Payload):
    type: Literal["super_like"] = "super_like"
    match_id: uuid.UUID

    def event_key(self) -> str:
        return f"super_like:{self.match_id}"


class ProfileViewPayload(_Payload):
    type: Literal["profile_view"] = "profile_view"
    view_id: uuid.UUID
    special_view: bool = False

    def event_key(self) -> str:
        return f"profile_view:{self.view_id}"


class InterestExpressedPayload(_Payload):
    type: Literal["interest_expressed"] = "interest_expressed"
    match_id: uuid.UUID
    message: str | None = None

    def event_key(self) -> str:
        return f"interest_expressed:{self.match_id}"


class MessagePayload(_Payload):
    type: Literal["message"] = "message"
    conversation_id: uuid.UUID
    message_id: uuid.UUID
    message_type: Literal["text", "image", "audio", "video", "file"] = "text"
    content: str | None = None

    def event_key(self) -> str:
        return f"message:{self.message_id}"


NotificationPayload = Annotated[
    Union[
        NewMatchPayload,
        MutualMatchPayload,
        SuperLikePayload,
        ProfileViewPayload,
        InterestExpressedPayload,
        MessagePayload,
    ],
    Field(discriminator="type"),
]

payload_adapter: TypeAdapter = TypeAdapter(NotificationPayload)
