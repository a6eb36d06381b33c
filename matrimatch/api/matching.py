"""
MatriMatch — Matching API

Endpoints for recording pair actions, querying mutuality, listing a member's
matches and statistics, unlocking communication, and queueing daily
generation.  Domain ``InputError``s are mapped to HTTP responses by the
application-level handler in ``matrimatch.main``.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from matrimatch.database import get_db
from matrimatch.errors import MemberNotFoundError
from matrimatch.models.match import MATCH_STATUSES
from matrimatch.models.member import Member
from matrimatch.schemas.match import (
    ActionRequest,
    ActionResponse,
    GenerateRequest,
    GenerateResponse,
    MatchListItem,
    MatchStats,
    MutualResponse,
)
from matrimatch.services.match_store import MatchStateStore
from matrimatch.services.mutual_match import MutualMatchDetector
from matrimatch.tasks.celery_app import celery_app
from matrimatch.tasks.definitions import GenerateMatchesForUser
from matrimatch.tasks.queue import CeleryTaskQueue, TaskQueue
from matrimatch.utils.clock import SystemClock

logger = structlog.get_logger("matrimatch.api.matching")

router = APIRouter()

_clock = SystemClock()

# ── Dependencies ──────────────────────────────────────────────────────────────


def get_task_queue() -> TaskQueue:
    return CeleryTaskQueue(celery_app, _clock)


def get_match_store() -> MatchStateStore:
    return MatchStateStore(clock=_clock)


def get_detector(
    store: MatchStateStore = Depends(get_match_store),
    queue: TaskQueue = Depends(get_task_queue),
) -> MutualMatchDetector:
    return MutualMatchDetector(store, queue)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{member_id}/actions — like / super-like / dislike / block
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{member_id}/actions",
    response_model=ActionResponse,
    summary="Record an action toward another member",
)
async def record_action(
    member_id: uuid.UUID,
    payload: ActionRequest,
    db: AsyncSession = Depends(get_db),
    detector: MutualMatchDetector = Depends(get_detector),
) -> ActionResponse:
    """Record the action and report the resulting pair status.

    A like that completes a mutual pair enqueues ``mutual_match``
    notifications for both members.
    """
    log = logger.bind(member_id=str(member_id), target_id=str(payload.target_id))
    outcome = await detector.record_action(
        member_id, payload.target_id, payload.action, db, message=payload.message
    )
    record = outcome.result.record
    log.info("action_recorded", action=payload.action, status=record.status)
    return ActionResponse(
        match_id=record.id,
        status=record.status,
        is_mutual=outcome.is_mutual,
        can_communicate=record.can_communicate,
        notifications_enqueued=len(outcome.notifications),
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET /{member_id}/mutual/{other_id}
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{member_id}/mutual/{other_id}",
    response_model=MutualResponse,
    summary="Check whether two members are a mutual match",
)
async def check_mutual(
    member_id: uuid.UUID,
    other_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    store: MatchStateStore = Depends(get_match_store),
) -> MutualResponse:
    return MutualResponse(
        member_id=member_id,
        other_id=other_id,
        is_mutual=await store.is_mutual(member_id, other_id, db),
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET /{member_id} — list matches
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{member_id}",
    response_model=list[MatchListItem],
    summary="List a member's matches",
)
async def list_matches(
    member_id: uuid.UUID,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    store: MatchStateStore = Depends(get_match_store),
) -> list[MatchListItem]:
    if status_filter is not None and status_filter not in MATCH_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown status {status_filter!r}.",
        )
    records = await store.list_for_member(member_id, db, status=status_filter, limit=limit)
    return [
        MatchListItem(
            match_id=r.id,
            candidate_id=r.candidate_id,
            status=r.status,
            match_type=r.match_type,
            compatibility_score=r.compatibility_score,
            match_quality=r.match_quality,
            matching_factors=r.matching_factors or [],
            can_communicate=r.can_communicate,
            created_at=r.created_at,
            expires_at=r.expires_at,
        )
        for r in records
    ]


@router.get(
    "/{member_id}/stats",
    response_model=MatchStats,
    summary="Match statistics for a member",
)
async def match_stats(
    member_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    store: MatchStateStore = Depends(get_match_store),
) -> MatchStats:
    return MatchStats(**await store.statistics(member_id, db))


# ──────────────────────────────────────────────────────────────────────────────
# POST /{member_id}/unlock/{other_id} — premium communication unlock
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{member_id}/unlock/{other_id}",
    response_model=ActionResponse,
    summary="Unlock communication with a non-mutual match (premium)",
)
async def unlock_communication(
    member_id: uuid.UUID,
    other_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    store: MatchStateStore = Depends(get_match_store),
) -> ActionResponse:
    member = await db.get(Member, member_id)
    if member is None:
        raise MemberNotFoundError(member_id)
    if await db.get(Member, other_id) is None:
        raise MemberNotFoundError(other_id)
    record = await store.unlock_communication(member, other_id, db)
    await db.commit()
    return ActionResponse(
        match_id=record.id,
        status=record.status,
        is_mutual=False,
        can_communicate=record.can_communicate,
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /{member_id}/generate — queue daily generation
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{member_id}/generate",
    response_model=GenerateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue daily match generation for a member",
)
async def queue_generation(
    member_id: uuid.UUID,
    payload: GenerateRequest | None = None,
    db: AsyncSession = Depends(get_db),
    queue: TaskQueue = Depends(get_task_queue),
) -> GenerateResponse:
    if await db.get(Member, member_id) is None:
        raise MemberNotFoundError(member_id)
    limit = payload.limit if payload is not None else None
    queued = await queue.enqueue(GenerateMatchesForUser(user_id=member_id, limit=limit))
    return GenerateResponse(task_id=queued.id, kind=queued.kind, run_at=queued.run_at)
