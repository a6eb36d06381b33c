"""
MatriMatch — Member, Profile, Preference and Horoscope models.

These rows are owned by the profile, billing and social-graph services; the
matching core reads them and only writes ``Member.last_matches_generated_at``.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from matrimatch.database import Base, JSONType
from matrimatch.utils.clock import as_utc


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        Index(
            "ix_members_matching_eligibility",
            "account_status",
            "profile_status",
            "profile_completion",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str] = mapped_column(String, nullable=False)
    account_status: Mapped[str] = mapped_column(
        String, default="active", nullable=False, comment="active / suspended / deactivated"
    )
    profile_status: Mapped[str] = mapped_column(
        String, default="pending", nullable=False, comment="pending / approved / rejected"
    )
    profile_completion: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    premium_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, comment="Identity document verified"
    )
    timezone: Mapped[str] = mapped_column(String, default="UTC", nullable=False)
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_matches_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Notification preferences ───────────────────────────────────
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    push_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    device_token: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    profile: Mapped["Profile"] = relationship(
        "Profile", back_populates="member", uselist=False, lazy="selectin",
        cascade="all, delete-orphan",
    )
    preference: Mapped["Preference"] = relationship(
        "Preference", back_populates="member", uselist=False, lazy="selectin",
        cascade="all, delete-orphan",
    )
    horoscope: Mapped["Horoscope"] = relationship(
        "Horoscope", back_populates="member", uselist=False, lazy="selectin",
        cascade="all, delete-orphan",
    )

    def age_on(self, day: date) -> int | None:
        if self.birth_date is None:
            return None
        years = day.year - self.birth_date.year
        if (day.month, day.day) < (self.birth_date.month, self.birth_date.day):
            years -= 1
        return years

    def is_premium_active(self, now: datetime) -> bool:
        if not self.is_premium:
            return False
        expires = as_utc(self.premium_expires_at)
        return expires is None or expires > now

    def is_eligible_for_matching(self, completion_threshold: int) -> bool:
        return (
            self.account_status == "active"
            and self.profile_status == "approved"
            and self.profile_completion >= completion_threshold
        )

    def __repr__(self) -> str:
        return f"<Member {self.display_name!r} id={self.id}>"


class Profile(Base):
    __tablename__ = "member_profiles"

    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True
    )
    height_cm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    education_level: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="high_school / diploma / bachelors / masters / phd"
    )
    occupation: Mapped[str | None] = mapped_column(String, nullable=True)
    religion: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    country: Mapped[str | None] = mapped_column(String, nullable=True)
    smoking: Mapped[str | None] = mapped_column(String, nullable=True)
    drinking: Mapped[str | None] = mapped_column(String, nullable=True)
    diet: Mapped[str | None] = mapped_column(String, nullable=True)
    interests: Mapped[list | None] = mapped_column(
        JSONType, nullable=True, comment="Array of interest tags"
    )

    member: Mapped["Member"] = relationship("Member", back_populates="profile")

    def __repr__(self) -> str:
        return f"<Profile member={self.member_id}>"


class Preference(Base):
    __tablename__ = "member_preferences"

    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True
    )
    min_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_height_cm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_height_cm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    preferred_genders: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    religions: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    education_levels: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    cities: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    countries: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    smoking: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    drinking: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    diet: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    deal_breakers: Mapped[list | None] = mapped_column(
        JSONType, nullable=True, comment="Dimension names enforced as hard constraints"
    )

    member: Mapped["Member"] = relationship("Member", back_populates="preference")

    def __repr__(self) -> str:
        return f"<Preference member={self.member_id}>"


class Horoscope(Base):
    __tablename__ = "member_horoscopes"

    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True
    )
    moon_sign: Mapped[str | None] = mapped_column(String, nullable=True)
    nakshatra: Mapped[str | None] = mapped_column(String, nullable=True)
    zodiac_sign: Mapped[str | None] = mapped_column(String, nullable=True)
    manglik: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    member: Mapped["Member"] = relationship("Member", back_populates="horoscope")

    def __repr__(self) -> str:
        return f"<Horoscope member={self.member_id} moon={self.moon_sign!r}>"
