"""
MatriMatch — Scoring input snapshots

Immutable, ORM-free views of the member data the scoring engine needs.
Building them once per batch keeps scoring pure and cheap to test.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from matrimatch.services.horoscope_service import HoroscopeData
from matrimatch.utils.clock import as_utc


def _norm(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def _norm_set(values) -> frozenset[str]:
    return frozenset(v for v in (_norm(x) for x in (values or [])) if v)


@dataclass(frozen=True)
class MemberSnapshot:
    """One member as seen by the scoring engine."""

    id: uuid.UUID
    age: int | None = None
    gender: str | None = None
    is_premium: bool = False
    is_verified: bool = False
    last_active_at: datetime | None = None
    height_cm: int | None = None
    education_level: str | None = None
    religion: str | None = None
    city: str | None = None
    country: str | None = None
    smoking: str | None = None
    drinking: str | None = None
    diet: str | None = None
    interests: frozenset[str] = field(default_factory=frozenset)
    horoscope: HoroscopeData | None = None

    @classmethod
    def from_member(cls, member, now: datetime) -> "MemberSnapshot":
        profile = member.profile
        horoscope = member.horoscope
        return cls(
            id=member.id,
            age=member.age_on(now.date()),
            gender=_norm(member.gender),
            is_premium=member.is_premium_active(now),
            is_verified=bool(member.is_verified),
            last_active_at=as_utc(member.last_active_at),
            height_cm=profile.height_cm if profile else None,
            education_level=_norm(profile.education_level) if profile else None,
            religion=_norm(profile.religion) if profile else None,
            city=_norm(profile.city) if profile else None,
            country=_norm(profile.country) if profile else None,
            smoking=_norm(profile.smoking) if profile else None,
            drinking=_norm(profile.drinking) if profile else None,
            diet=_norm(profile.diet) if profile else None,
            interests=_norm_set(profile.interests) if profile else frozenset(),
            horoscope=(
                HoroscopeData(
                    moon_sign=horoscope.moon_sign,
                    nakshatra=horoscope.nakshatra,
                    zodiac_sign=horoscope.zodiac_sign,
                    manglik=horoscope.manglik,
                )
                if horoscope
                else None
            ),
        )


@dataclass(frozen=True)
class PreferenceSnapshot:
    """The seeking side's partner preferences."""

    min_age: int | None = None
    max_age: int | None = None
    min_height_cm: int | None = None
    max_height_cm: int | None = None
    preferred_genders: frozenset[str] = field(default_factory=frozenset)
    religions: frozenset[str] = field(default_factory=frozenset)
    education_levels: frozenset[str] = field(default_factory=frozenset)
    cities: frozenset[str] = field(default_factory=frozenset)
    countries: frozenset[str] = field(default_factory=frozenset)
    smoking: frozenset[str] = field(default_factory=frozenset)
    drinking: frozenset[str] = field(default_factory=frozenset)
    diet: frozenset[str] = field(default_factory=frozenset)
    deal_breakers: tuple[str, ...] = ()

    @classmethod
    def build(cls, **kwargs) -> "PreferenceSnapshot":
        """Build from plain lists/strings, normalising every set."""
        sets = {
            "preferred_genders", "religions", "education_levels", "cities",
            "countries", "smoking", "drinking", "diet",
        }
        values = {}
        for key, value in kwargs.items():
            if key in sets:
                values[key] = _norm_set(value)
            elif key == "deal_breakers":
                values[key] = tuple(d for d in (_norm(x) for x in (value or [])) if d)
            else:
                values[key] = value
        return cls(**values)

    @classmethod
    def from_preference(cls, preference) -> "PreferenceSnapshot":
        if preference is None:
            return cls()
        return cls.build(
            min_age=preference.min_age,
            max_age=preference.max_age,
            min_height_cm=preference.min_height_cm,
            max_height_cm=preference.max_height_cm,
            preferred_genders=preference.preferred_genders,
            religions=preference.religions,
            education_levels=preference.education_levels,
            cities=preference.cities,
            countries=preference.countries,
            smoking=preference.smoking,
            drinking=preference.drinking,
            diet=preference.diet,
            deal_breakers=preference.deal_breakers,
        )

