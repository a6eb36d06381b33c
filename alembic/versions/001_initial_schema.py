"""Initial schema — all 7 MatriMatch tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _member_fk(name: str, **kwargs) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("members.id", ondelete="CASCADE"),
        **kwargs,
    )


def upgrade() -> None:
    # ── 1. members ──────────────────────────────────────────────────
    op.create_table(
        "members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String, unique=True, index=True, nullable=False),
        sa.Column("display_name", sa.String, nullable=False),
        sa.Column("birth_date", sa.Date, nullable=True),
        sa.Column("gender", sa.String, nullable=False),
        sa.Column(
            "account_status",
            sa.String,
            server_default="active",
            nullable=False,
            comment="active / suspended / deactivated",
        ),
        sa.Column(
            "profile_status",
            sa.String,
            server_default="pending",
            nullable=False,
            comment="pending / approved / rejected",
        ),
        sa.Column("profile_completion", sa.Integer, server_default="0", nullable=False),
        sa.Column("is_premium", sa.Boolean, server_default="false", nullable=False),
        sa.Column("premium_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_verified", sa.Boolean, server_default="false", nullable=False),
        sa.Column("timezone", sa.String, server_default="UTC", nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_matches_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notifications_enabled", sa.Boolean, server_default="true", nullable=False),
        sa.Column("push_notifications", sa.Boolean, server_default="true", nullable=False),
        sa.Column("email_notifications", sa.Boolean, server_default="true", nullable=False),
        sa.Column("device_token", sa.String, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_members_matching_eligibility",
        "members",
        ["account_status", "profile_status", "profile_completion"],
    )

    # ── 2. member_profiles ──────────────────────────────────────────
    op.create_table(
        "member_profiles",
        _member_fk("member_id", primary_key=True),
        sa.Column("height_cm", sa.Integer, nullable=True),
        sa.Column("education_level", sa.String, nullable=True),
        sa.Column("occupation", sa.String, nullable=True),
        sa.Column("religion", sa.String, nullable=True),
        sa.Column("city", sa.String, nullable=True),
        sa.Column("country", sa.String, nullable=True),
        sa.Column("smoking", sa.String, nullable=True),
        sa.Column("drinking", sa.String, nullable=True),
        sa.Column("diet", sa.String, nullable=True),
        sa.Column(
            "interests",
            postgresql.JSONB,
            nullable=True,
            comment="Array of interest tags",
        ),
    )

    # ── 3. member_preferences ───────────────────────────────────────
    op.create_table(
        "member_preferences",
        _member_fk("member_id", primary_key=True),
        sa.Column("min_age", sa.Integer, nullable=True),
        sa.Column("max_age", sa.Integer, nullable=True),
        sa.Column("min_height_cm", sa.Integer, nullable=True),
        sa.Column("max_height_cm", sa.Integer, nullable=True),
        sa.Column("preferred_genders", postgresql.JSONB, nullable=True),
        sa.Column("religions", postgresql.JSONB, nullable=True),
        sa.Column("education_levels", postgresql.JSONB, nullable=True),
        sa.Column("cities", postgresql.JSONB, nullable=True),
        sa.Column("countries", postgresql.JSONB, nullable=True),
        sa.Column("smoking", postgresql.JSONB, nullable=True),
        sa.Column("drinking", postgresql.JSONB, nullable=True),
        sa.Column("diet", postgresql.JSONB, nullable=True),
        sa.Column(
            "deal_breakers",
            postgresql.JSONB,
            nullable=True,
            comment="Dimension names enforced as hard constraints",
        ),
    )

    # ── 4. member_horoscopes ────────────────────────────────────────
    op.create_table(
        "member_horoscopes",
        _member_fk("member_id", primary_key=True),
        sa.Column("moon_sign", sa.String, nullable=True),
        sa.Column("nakshatra", sa.String, nullable=True),
        sa.Column("zodiac_sign", sa.String, nullable=True),
        sa.Column("manglik", sa.Boolean, nullable=True),
    )

    # ── 5. conversations ────────────────────────────────────────────
    op.create_table(
        "conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _member_fk("member_one_id", nullable=False),
        _member_fk("member_two_id", nullable=False),
        sa.Column("status", sa.String, server_default="active", nullable=False),
        sa.Column("blocked_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # ── 6. match_records ────────────────────────────────────────────
    op.create_table(
        "match_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _member_fk("initiator_id", nullable=False, index=True),
        _member_fk("candidate_id", nullable=False),
        sa.Column("status", sa.String, server_default="pending", nullable=False),
        sa.Column("initiator_action", sa.String, server_default="none", nullable=False),
        sa.Column("candidate_action", sa.String, server_default="none", nullable=False),
        sa.Column("match_type", sa.String, server_default="daily_suggestion", nullable=False),
        sa.Column("compatibility_score", sa.Float, nullable=True),
        sa.Column(
            "sub_scores",
            postgresql.JSONB,
            nullable=True,
            comment="Per-dimension sub-scores",
        ),
        sa.Column("match_quality", sa.String, nullable=True),
        sa.Column("matching_factors", postgresql.JSONB, nullable=True),
        sa.Column("scored_on", sa.Date, nullable=True),
        sa.Column("can_communicate", sa.Boolean, server_default="false", nullable=False),
        sa.Column(
            "communication_unlocked",
            sa.Boolean,
            server_default="false",
            nullable=False,
            comment="Premium unlock without mutuality",
        ),
        sa.Column("initiator_action_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("candidate_action_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("mutual_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("initiator_id", "candidate_id", name="uq_match_record_pair"),
    )
    op.create_index(
        "ix_match_records_candidate_status",
        "match_records",
        ["candidate_id", "status"],
    )

    # ── 7. notifications ────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _member_fk("user_id", nullable=False),
        sa.Column(
            "event_key",
            sa.String,
            nullable=False,
            comment="Logical event identity; retries reuse it",
        ),
        sa.Column("type", sa.String, nullable=False),
        sa.Column("title", sa.String, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("data", postgresql.JSONB, nullable=True),
        sa.Column("priority", sa.String, server_default="medium", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("push_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_queued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "event_key", name="uq_notification_event"),
    )
    op.create_index(
        "ix_notifications_user_type_created",
        "notifications",
        ["user_id", "type", "created_at"],
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_index("ix_notifications_user_type_created", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_match_records_candidate_status", table_name="match_records")
    op.drop_table("match_records")

    op.drop_table("conversations")
    op.drop_table("member_horoscopes")
    op.drop_table("member_preferences")
    op.drop_table("member_profiles")

    op.drop_index("ix_members_matching_eligibility", table_name="members")
    op.drop_table("members")
