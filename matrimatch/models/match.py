"""
MatriMatch — MatchRecord model.

Rows are directional: ``initiator_id`` is the member whose candidate list the
row belongs to.  ``initiator_action`` is that member's action toward
``candidate_id`` and ``candidate_action`` is the reverse.  When either side
acts, both directional rows are written so the pair-level ``status`` is
visible from either member.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from matrimatch.database import Base, JSONType

MATCH_STATUSES = ("pending", "liked", "super_liked", "disliked", "blocked", "mutual", "expired")
MATCH_ACTIONS = ("none", "liked", "super_liked", "disliked", "blocked")
MATCH_TYPES = ("daily_suggestion", "premium_suggestion", "direct_action")


class MatchRecord(Base):
    __tablename__ = "match_records"
    __table_args__ = (
        UniqueConstraint("initiator_id", "candidate_id", name="uq_match_record_pair"),
        Index("ix_match_records_candidate_status", "candidate_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    initiator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="CASCADE"), index=True, nullable=False
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String, default="pending", nullable=False)
    initiator_action: Mapped[str] = mapped_column(String, default="none", nullable=False)
    candidate_action: Mapped[str] = mapped_column(String, default="none", nullable=False)
    match_type: Mapped[str] = mapped_column(String, default="daily_suggestion", nullable=False)

    compatibility_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    sub_scores: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="Per-dimension sub-scores"
    )
    match_quality: Mapped[str | None] = mapped_column(String, nullable=True)
    matching_factors: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    scored_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    can_communicate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    communication_unlocked: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, comment="Premium unlock without mutuality"
    )

    initiator_action_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    candidate_action_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    mutual_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<MatchRecord {self.initiator_id} -> {self.candidate_id} "
            f"status={self.status!r}>"
        )
