"""
MatriMatch — Deal-breaker filter

A seeker may flag preference dimensions as hard constraints.  When the
candidate violates one of them the composite score short-circuits to zero.

A dimension with no configured preference never violates, and neither does
a candidate attribute that is unknown.
"""

from __future__ import annotations

from typing import Callable

from matrimatch.services.snapshots import MemberSnapshot, PreferenceSnapshot

DEAL_BREAKER_DIMENSIONS: tuple[str, ...] = (
    "age", "height", "religion", "education", "location",
    "smoking", "drinking", "diet",
)


def _outside(value: int | None, low: int | None, high: int | None) -> bool:
    if value is None:
        return False
    if low is not None and value < low:
        return True
    if high is not None and value > high:
        return True
    return False


def _not_in(value: str | None, allowed: frozenset[str]) -> bool:
    return bool(allowed) and value is not None and value not in allowed


def _age(pref: PreferenceSnapshot, cand: MemberSnapshot) -> bool:
    return _outside(cand.age, pref.min_age, pref.max_age)


def _height(pref: PreferenceSnapshot, cand: MemberSnapshot) -> bool:
    return _outside(cand.height_cm, pref.min_height_cm, pref.max_height_cm)


def _religion(pref: PreferenceSnapshot, cand: MemberSnapshot) -> bool:
    return _not_in(cand.religion, pref.religions)


def _education(pref: PreferenceSnapshot, cand: MemberSnapshot) -> bool:
    return _not_in(cand.education_level, pref.education_levels)


def _location(pref: PreferenceSnapshot, cand: MemberSnapshot) -> bool:
    if not pref.cities and not pref.countries:
        return False
    if cand.city is None and cand.country is None:
        return False
    if cand.city is not None and cand.city in pref.cities:
        return False
    if cand.country is not None and cand.country in pref.countries:
        return False
    return True


def _smoking(pref: PreferenceSnapshot, cand: MemberSnapshot) -> bool:
    return _not_in(cand.smoking, pref.smoking)


def _drinking(pref: PreferenceSnapshot, cand: MemberSnapshot) -> bool:
    return _not_in(cand.drinking, pref.drinking)


def _diet(pref: PreferenceSnapshot, cand: MemberSnapshot) -> bool:
    return _not_in(cand.diet, pref.diet)


_CHECKS: dict[str, Callable[[PreferenceSnapshot, MemberSnapshot], bool]] = {
    "age": _age,
    "height": _height,
    "religion": _religion,
    "education": _education,
    "location": _location,
    "smoking": _smoking,
    "drinking": _drinking,
    "diet": _diet,
}


def violated_deal_breaker(
    preference: PreferenceSnapshot,
    candidate: MemberSnapshot,
) -> str | None:
    """Return the first declared dimension the candidate violates, if any.

    Unknown dimension names are ignored.
    """
    for dimension in preference.deal_breakers:
        check = _CHECKS.get(dimension)
        if check is not None and check(preference, candidate):
            return dimension
    return None
