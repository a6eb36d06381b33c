from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional


class ActionRequest(BaseModel):
    target_id: UUID
    action: Literal["liked", "super_liked", "disliked", "blocked"]
    message: Optional[str] = Field(default=None, max_length=500)


class ActionResponse(BaseModel):
    match_id: UUID
    status: str
    is_mutual: bool
    can_communicate: bool
    notifications_enqueued: int = 0


class MutualResponse(BaseModel):
    member_id: UUID
    other_id: UUID
    is_mutual: bool


class MatchListItem(BaseModel):
    match_id: UUID
    candidate_id: UUID
    status: str
    match_type: str
    compatibility_score: Optional[float] = None
    match_quality: Optional[str] = None
    matching_factors: list[str] = []
    can_communicate: bool
    created_at: datetime
    expires_at: Optional[datetime] = None


class MatchStats(BaseModel):
    total_matches: int
    mutual_matches: int
    pending_matches: int
    likes_sent: int
    super_likes_sent: int
    likes_received: int
    response_rate: float


class GenerateRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)


class GenerateResponse(BaseModel):
    task_id: str
    kind: str
    run_at: datetime


class PresenceUpdate(BaseModel):
    conversation_id: Optional[UUID] = None
