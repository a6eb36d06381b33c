"""
MatriMatch — Notifications API

Entry points used by the messaging and profile services to raise
notifications, plus the presence hint that suppresses message notifications
while a member is looking at the conversation.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from matrimatch.api.matching import get_task_queue
from matrimatch.config import get_settings
from matrimatch.redis_client import get_redis
from matrimatch.schemas.match import GenerateResponse, PresenceUpdate
from matrimatch.schemas.notification import MessagePayload, ProfileViewPayload
from matrimatch.services.notification_policy import current_conversation_key
from matrimatch.tasks.definitions import SendMatchNotification, SendMessageNotification
from matrimatch.tasks.queue import TaskQueue

logger = structlog.get_logger("matrimatch.api.notifications")

router = APIRouter()


@router.post(
    "/{recipient_id}/message",
    response_model=GenerateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a new-message notification",
)
async def notify_message(
    recipient_id: uuid.UUID,
    payload: MessagePayload,
    queue: TaskQueue = Depends(get_task_queue),
) -> GenerateResponse:
    queued = await queue.enqueue(SendMessageNotification(recipient_id=recipient_id, payload=payload))
    return GenerateResponse(task_id=queued.id, kind=queued.kind, run_at=queued.run_at)


@router.post(
    "/{recipient_id}/profile-view",
    response_model=GenerateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a profile-view notification",
)
async def notify_profile_view(
    recipient_id: uuid.UUID,
    payload: ProfileViewPayload,
    queue: TaskQueue = Depends(get_task_queue),
) -> GenerateResponse:
    queued = await queue.enqueue(SendMatchNotification(recipient_id=recipient_id, payload=payload))
    return GenerateResponse(task_id=queued.id, kind=queued.kind, run_at=queued.run_at)


@router.put(
    "/{member_id}/presence",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Set or clear the conversation a member is viewing",
)
async def update_presence(member_id: uuid.UUID, payload: PresenceUpdate) -> None:
    redis = get_redis()
    if redis is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Presence store unavailable.",
        )
    key = current_conversation_key(member_id)
    if payload.conversation_id is None:
        await redis.delete(key)
    else:
        await redis.set(
            key,
            str(payload.conversation_id),
            ex=get_settings().ACTIVE_CONVERSATION_WINDOW_SECONDS,
        )
    logger.debug("presence_updated", member_id=str(member_id))
