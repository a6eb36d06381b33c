"""
MatriMatch — Notification templates

Maps each payload variant to its fixed title, body, data shape, priority and
retention window.  Data always carries ``type`` and ``action_url``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import singledispatch

from matrimatch.schemas.notification import (
    InterestExpressedPayload,
    MessagePayload,
    MutualMatchPayload,
    NewMatchPayload,
    NotificationType,
    ProfileViewPayload,
    SuperLikePayload,
)

PREVIEW_LENGTH = 100

MATCH_RETENTION = timedelta(days=30)
MESSAGE_RETENTION = timedelta(days=7)

_MESSAGE_TITLES = {
    "text": "New message from {name}",
    "image": "{name} sent you a photo",
    "audio": "{name} sent you a voice message",
    "video": "{name} sent you a video",
    "file": "{name} sent you a file",
}
_MESSAGE_BODIES = {
    "image": "📷 Photo",
    "audio": "🎤 Voice message",
    "video": "🎥 Video",
    "file": "📎 File attachment",
}


@dataclass(frozen=True)
class RenderedNotification:
    type: NotificationType
    title: str
    body: str
    data: dict
    priority: str
    retention: timedelta


def truncate(content: str, length: int = PREVIEW_LENGTH) -> str:
    if len(content) <= length:
        return content
    return content[: length - 3] + "..."


@singledispatch
def render(payload) -> RenderedNotification:
    raise TypeError(f"No template for {type(payload).__name__}")


@render.register
def _(payload: NewMatchPayload) -> RenderedNotification:
    return RenderedNotification(
        type=NotificationType.NEW_MATCH,
        title="New Match Found! 💕",
        body="You have a new potential match waiting for you.",
        data={
            "type": payload.type,
            "match_id": str(payload.match_id),
            "matched_member_id": str(payload.actor_id),
            "compatibility_score": payload.compatibility_score,
            "action_url": f"/matches/{payload.actor_id}",
        },
        priority="medium",
        retention=MATCH_RETENTION,
    )


@render.register
def _(payload: MutualMatchPayload) -> RenderedNotification:
    return RenderedNotification(
        type=NotificationType.MUTUAL_MATCH,
        title="It's a Match! 🎉",
        body=f"You and {payload.actor_name} liked each other! Start chatting now.",
        data={
            "type": payload.type,
            "match_id": str(payload.match_id),
            "matched_member_id": str(payload.actor_id),
            "can_chat": True,
            "action_url": f"/chat/{payload.actor_id}",
        },
        priority="high",
        retention=MATCH_RETENTION,
    )


@render.register
def _(payload: SuperLikePayload) -> RenderedNotification:
    return RenderedNotification(
        type=NotificationType.SUPER_LIKE,
        title="Someone Super Liked You! ⭐",
        body=f"{payload.actor_name} thinks you're amazing!",
        data={
            "type": payload.type,
            "match_id": str(payload.match_id),
            "liker_id": str(payload.actor_id),
            "is_premium_feature": True,
            "action_url": f"/profile/{payload.actor_id}",
        },
        priority="high",
        retention=MATCH_RETENTION,
    )


@render.register
def _(payload: ProfileViewPayload) -> RenderedNotification:
    return RenderedNotification(
        type=NotificationType.PROFILE_VIEW,
        title="Profile View",
        body=f"{payload.actor_name} viewed your profile",
        data={
            "type": payload.type,
            "viewer_id": str(payload.actor_id),
            "special_view": payload.special_view,
            "action_url": f"/profile/{payload.actor_id}",
        },
        priority="low",
        retention=MATCH_RETENTION,
    )


@render.register
def _(payload: InterestExpressedPayload) -> RenderedNotification:
    return RenderedNotification(
        type=NotificationType.INTEREST_EXPRESSED,
        title="Someone is Interested! 💖",
        body=f"{payload.actor_name} expressed interest in your profile",
        data={
            "type": payload.type,
            "match_id": str(payload.match_id),
            "interested_member_id": str(payload.actor_id),
            "message": payload.message,
            "action_url": f"/profile/{payload.actor_id}",
        },
        priority="medium",
        retention=MATCH_RETENTION,
    )


@render.register
def _(payload: MessagePayload) -> RenderedNotification:
    title = _MESSAGE_TITLES.get(payload.message_type, _MESSAGE_TITLES["text"])
    if payload.message_type == "text":
        body = truncate(payload.content or "")
    else:
        body = _MESSAGE_BODIES[payload.message_type]
    return RenderedNotification(
        type=NotificationType.MESSAGE,
        title=title.format(name=payload.actor_name),
        body=body,
        data={
            "type": payload.type,
            "message_id": str(payload.message_id),
            "conversation_id": str(payload.conversation_id),
            "sender_id": str(payload.actor_id),
            "sender_name": payload.actor_name,
            "message_type": payload.message_type,
            "message_preview": body,
            "action_url": f"/chat/{payload.conversation_id}",
        },
        priority="high",
        retention=MESSAGE_RETENTION,
    )
