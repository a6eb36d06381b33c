"""
MatriMatch — Compatibility Scoring Engine

Turns a seeker (member + preference) and a candidate into a 0-100 composite:

  composite = Σ weight_d × sub_score_d      (weights sum to 1.0)

  d ∈ {age, location, religion, education, lifestyle, interests,
       horoscope, activity}

Deal breakers run first and short-circuit the composite to 0.  Two boosts
are applied afterwards, each capped at 100:

  * premium boost       — seeker holds an active premium subscription
  * verification boost  — candidate's identity is verified

Scoring is asymmetric: ``score(A, pref_A, B)`` uses A's preferences only.
Every sub-score is a public method so it can be tested on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from matrimatch.config import Settings, get_settings
from matrimatch.services.deal_breakers import violated_deal_breaker
from matrimatch.services.horoscope_service import HoroscopeScorer
from matrimatch.services.snapshots import MemberSnapshot, PreferenceSnapshot
from matrimatch.utils.clock import as_utc

logger = structlog.get_logger("matrimatch.scoring_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

NEUTRAL_SCORE = 50.0

# Fallback bounds when only one side of an age range is configured
_DEFAULT_MIN_AGE = 18
_DEFAULT_MAX_AGE = 80

_LOCATION_COUNTRY_SCORE = 60.0

EDUCATION_LEVELS: dict[str, int] = {
    "high_school": 1,
    "diploma": 2,
    "bachelors": 3,
    "masters": 4,
    "phd": 5,
}
_EDUCATION_GAP_SCORES: dict[int, float] = {0: 100.0, 1: 70.0, 2: 40.0}

_LIFESTYLE_WEIGHTS: dict[str, float] = {
    "smoking": 0.4,
    "drinking": 0.3,
    "diet": 0.3,
}
_LIFESTYLE_ADJACENT_SCORE = 60.0
_LIFESTYLE_ADJACENT: dict[str, set[frozenset[str]]] = {
    "smoking": {
        frozenset({"never", "occasionally"}),
        frozenset({"occasionally", "regularly"}),
    },
    "drinking": {
        frozenset({"never", "socially"}),
        frozenset({"socially", "regularly"}),
    },
    "diet": {
        frozenset({"vegetarian", "vegan"}),
        frozenset({"vegetarian", "eggetarian"}),
        frozenset({"eggetarian", "non_vegetarian"}),
    },
}

_INTEREST_BONUSES: tuple[tuple[int, float], ...] = ((5, 20.0), (3, 10.0))

QUALITY_BANDS: tuple[tuple[float, str], ...] = (
    (85.0, "excellent"),
    (70.0, "very_good"),
    (55.0, "good"),
    (40.0, "fair"),
)


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def match_quality(score: float) -> str:
    """Human label for a composite score."""
    for threshold, label in QUALITY_BANDS:
        if score >= threshold:
            return label
    return "poor"


@dataclass(frozen=True)
class ScoreBreakdown:
    """Result of scoring one ordered pair."""

    composite: float
    sub_scores: dict[str, float] = field(default_factory=dict)
    deal_breaker: str | None = None
    premium_boost: float = 0.0
    verification_boost: float = 0.0
    matching_factors: tuple[str, ...] = ()

    @property
    def quality(self) -> str:
        return match_quality(self.composite)

    @property
    def excluded(self) -> bool:
        return self.deal_breaker is not None

    def to_dict(self) -> dict:
        return {
            "composite": self.composite,
            "sub_scores": dict(self.sub_scores),
            "deal_breaker": self.deal_breaker,
            "premium_boost": self.premium_boost,
            "verification_boost": self.verification_boost,
            "matching_factors": list(self.matching_factors),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScoreBreakdown":
        return cls(
            composite=float(data["composite"]),
            sub_scores={k: float(v) for k, v in data.get("sub_scores", {}).items()},
            deal_breaker=data.get("deal_breaker"),
            premium_boost=float(data.get("premium_boost", 0.0)),
            verification_boost=float(data.get("verification_boost", 0.0)),
            matching_factors=tuple(data.get("matching_factors", ())),
        )


class CompatibilityScorer:
    """Multi-factor weighted compatibility scoring.

    Parameters
    ----------
    settings:
        Source of weights, boost sizes and activity-decay parameters.
        Defaults to ``get_settings()``.
    horoscope_scorer:
        Scorer for the horoscope dimension.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        horoscope_scorer: HoroscopeScorer | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.weights: dict[str, float] = settings.scoring_weights
        self.premium_boost: float = settings.PREMIUM_BOOST
        self.verification_boost: float = settings.VERIFICATION_BOOST
        self.activity_full_credit_days: float = settings.ACTIVITY_FULL_CREDIT_DAYS
        self.activity_half_life_days: float = settings.ACTIVITY_HALF_LIFE_DAYS
        self.activity_floor: float = settings.ACTIVITY_FLOOR
        self.horoscope_scorer = horoscope_scorer or HoroscopeScorer()

    # ── Public API ────────────────────────────────────────────────────────

    def score(
        self,
        seeker: MemberSnapshot,
        preference: PreferenceSnapshot,
        candidate: MemberSnapshot,
        now: datetime,
    ) -> ScoreBreakdown:
        """Score ``candidate`` for ``seeker`` using the seeker's preferences.

        Returns
        -------
        ScoreBreakdown
            ``composite`` in [0, 100].  When a deal breaker is violated the
            composite is 0, ``deal_breaker`` names the dimension and no
            boosts are applied.
        """
        violated = violated_deal_breaker(preference, candidate)
        if violated is not None:
            logger.debug(
                "deal_breaker_violated",
                seeker_id=str(seeker.id),
                candidate_id=str(candidate.id),
                dimension=violated,
            )
            return ScoreBreakdown(composite=0.0, deal_breaker=violated)

        sub_scores = {
            "age": self.age_score(preference, candidate),
            "location": self.location_score(seeker, preference, candidate),
            "religion": self.religion_score(preference, candidate),
            "education": self.education_score(preference, candidate),
            "lifestyle": self.lifestyle_score(preference, candidate),
            "interests": self.interest_score(seeker, candidate),
            "horoscope": self.horoscope_scorer.score(seeker.horoscope, candidate.horoscope),
            "activity": self.activity_score(candidate.last_active_at, now),
        }
        base = _clamp(sum(self.weights[d] * s for d, s in sub_scores.items()))

        boosted = self.apply_premium_boost(base, seeker.is_premium)
        premium_delta = boosted - base
        final = self.apply_verification_boost(boosted, candidate.is_verified)
        verification_delta = final - boosted

        return ScoreBreakdown(
            composite=round(final, 2),
            sub_scores={d: round(s, 2) for d, s in sub_scores.items()},
            premium_boost=round(premium_delta, 2),
            verification_boost=round(verification_delta, 2),
            matching_factors=self.matching_factors(seeker, candidate),
        )

    def apply_premium_boost(self, score: float, seeker_is_premium: bool) -> float:
        if not seeker_is_premium:
            return score
        return min(100.0, score + self.premium_boost)

    def apply_verification_boost(self, score: float, candidate_is_verified: bool) -> float:
        if not candidate_is_verified:
            return score
        return min(100.0, score + self.verification_boost)

    # ── Sub-scores ────────────────────────────────────────────────────────

    def age_score(self, preference: PreferenceSnapshot, candidate: MemberSnapshot) -> float:
        """100 at the centre of the preferred range, 50 at its edges, 0 outside."""
        if preference.min_age is None and preference.max_age is None:
            return NEUTRAL_SCORE
        if candidate.age is None:
            return NEUTRAL_SCORE

        low = preference.min_age if preference.min_age is not None else _DEFAULT_MIN_AGE
        high = preference.max_age if preference.max_age is not None else _DEFAULT_MAX_AGE
        if candidate.age < low or candidate.age > high:
            return 0.0

        half_width = (high - low) / 2.0
        if half_width <= 0:
            return 100.0
        midpoint = (low + high) / 2.0
        return _clamp(100.0 - 50.0 * abs(candidate.age - midpoint) / half_width)

    def location_score(
        self,
        seeker: MemberSnapshot,
        preference: PreferenceSnapshot,
        candidate: MemberSnapshot,
    ) -> float:
        if not preference.cities and not preference.countries:
            return NEUTRAL_SCORE
        if candidate.city is None and candidate.country is None:
            return NEUTRAL_SCORE

        if candidate.city is not None and candidate.city in preference.cities:
            return 100.0
        if candidate.country is not None:
            if preference.countries and candidate.country in preference.countries:
                return _LOCATION_COUNTRY_SCORE
            # Cities only: the seeker's own country counts as a partial match
            if not preference.countries and candidate.country == seeker.country:
                return _LOCATION_COUNTRY_SCORE
        return 0.0

    def religion_score(self, preference: PreferenceSnapshot, candidate: MemberSnapshot) -> float:
        if not preference.religions:
            return NEUTRAL_SCORE
        if candidate.religion is None:
            return NEUTRAL_SCORE
        return 100.0 if candidate.religion in preference.religions else 0.0

    def education_score(self, preference: PreferenceSnapshot, candidate: MemberSnapshot) -> float:
        if not preference.education_levels:
            return NEUTRAL_SCORE
        if candidate.education_level is None:
            return NEUTRAL_SCORE
        if candidate.education_level in preference.education_levels:
            return 100.0

        rank = EDUCATION_LEVELS.get(candidate.education_level)
        preferred_ranks = [
            EDUCATION_LEVELS[level]
            for level in preference.education_levels
            if level in EDUCATION_LEVELS
        ]
        if rank is None or not preferred_ranks:
            return 0.0
        gap = min(abs(rank - r) for r in preferred_ranks)
        return _EDUCATION_GAP_SCORES.get(gap, 0.0)

    def lifestyle_score(self, preference: PreferenceSnapshot, candidate: MemberSnapshot) -> float:
        """Weighted smoking/drinking/diet score over the dimensions that apply."""
        weighted = 0.0
        weight_total = 0.0
        for dimension, weight in _LIFESTYLE_WEIGHTS.items():
            allowed: frozenset[str] = getattr(preference, dimension)
            value: str | None = getattr(candidate, dimension)
            if not allowed or value is None:
                continue
            if value in allowed:
                dim_score = 100.0
            elif any(
                frozenset({value, a}) in _LIFESTYLE_ADJACENT[dimension] for a in allowed
            ):
                dim_score = _LIFESTYLE_ADJACENT_SCORE
            else:
                dim_score = 0.0
            weighted += weight * dim_score
            weight_total += weight

        if weight_total == 0.0:
            return NEUTRAL_SCORE
        return weighted / weight_total

    def interest_score(self, seeker: MemberSnapshot, candidate: MemberSnapshot) -> float:
        """Jaccard overlap of interest tags scaled to 100, plus a shared-count bonus."""
        if not seeker.interests or not candidate.interests:
            return NEUTRAL_SCORE
        common = seeker.interests & candidate.interests
        union = seeker.interests | candidate.interests
        score = 100.0 * len(common) / len(union)
        for threshold, bonus in _INTEREST_BONUSES:
            if len(common) >= threshold:
                score += bonus
                break
        return _clamp(score)

    def activity_score(self, last_active_at: datetime | None, now: datetime) -> float:
        """Full credit for recent activity, exponential decay toward a floor.

        Unknown activity scores neutral.
        """
        if last_active_at is None:
            return NEUTRAL_SCORE
        idle_days = (as_utc(now) - as_utc(last_active_at)).total_seconds() / 86400.0
        if idle_days <= self.activity_full_credit_days:
            return 100.0
        decay = 0.5 ** ((idle_days - self.activity_full_credit_days) / self.activity_half_life_days)
        return self.activity_floor + (100.0 - self.activity_floor) * decay

    # ── Explanations ──────────────────────────────────────────────────────

    @staticmethod
    def matching_factors(seeker: MemberSnapshot, candidate: MemberSnapshot) -> tuple[str, ...]:
        factors: list[str] = []
        if seeker.city and seeker.city == candidate.city:
            factors.append("same_city")
        if seeker.country and seeker.country == candidate.country:
            factors.append("same_country")
        if seeker.religion and seeker.religion == candidate.religion:
            factors.append("same_religion")
        a = EDUCATION_LEVELS.get(seeker.education_level or "")
        b = EDUCATION_LEVELS.get(candidate.education_level or "")
        if a is not None and b is not None and abs(a - b) <= 1:
            factors.append("similar_education")
        if len(seeker.interests & candidate.interests) >= 3:
            factors.append("common_interests")
        if seeker.diet and seeker.diet == candidate.diet:
            factors.append("same_diet")
        if seeker.smoking and seeker.smoking == candidate.smoking:
            factors.append("same_smoking_habits")
        return tuple(factors)
