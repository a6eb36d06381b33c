"""
MatriMatch — Horoscope compatibility

Blends a moon-sign compatibility table with a nakshatra (tara-koota style)
score:

  horoscope = 0.6 × moon_sign_score + 0.4 × nakshatra_score − manglik_penalty

The moon-sign table is derived from the angular distance between signs on
the zodiac wheel, so it is symmetric by construction:

  ========  =========  =====
  distance  aspect     score
  ========  =========  =====
  0         same sign  75
  1         semi-sext  45
  2         sextile    80
  3         square     30
  4         trine      90
  5         quincunx   40
  6         opposition 60
  ========  =========  =====

Either side lacking horoscope data yields the neutral score (50).
"""

from __future__ import annotations

from dataclasses import dataclass

ZODIAC_SIGNS: list[str] = [
    "aries", "taurus", "gemini", "cancer", "leo", "virgo",
    "libra", "scorpio", "sagittarius", "capricorn", "aquarius", "pisces",
]

NAKSHATRAS: list[str] = [
    "ashwini", "bharani", "krittika", "rohini", "mrigashira", "ardra",
    "punarvasu", "pushya", "ashlesha", "magha", "purva_phalguni",
    "uttara_phalguni", "hasta", "chitra", "swati", "vishakha", "anuradha",
    "jyeshtha", "mula", "purva_ashadha", "uttara_ashadha", "shravana",
    "dhanishta", "shatabhisha", "purva_bhadrapada", "uttara_bhadrapada",
    "revati",
]

NEUTRAL_SCORE = 50.0
MOON_SIGN_WEIGHT = 0.6
NAKSHATRA_WEIGHT = 0.4
MANGLIK_MISMATCH_PENALTY = 20.0

_ASPECT_SCORES: dict[int, float] = {
    0: 75.0,
    1: 45.0,
    2: 80.0,
    3: 30.0,
    4: 90.0,
    5: 40.0,
    6: 60.0,
}

# Tara 2, 4, 6, 8 and 9 are auspicious; 3, 5 and 7 are not; 1 is neutral.
# Tara 9 shows up as 0 after the modulo.
_FAVOURABLE_TARAS = {2, 4, 6, 8, 0}
_UNFAVOURABLE_TARAS = {3, 5, 7}


def _normalise(value: str | None) -> str | None:
    if not value:
        return None
    return value.strip().lower().replace(" ", "_").replace("-", "_")


@dataclass(frozen=True)
class HoroscopeData:
    moon_sign: str | None = None
    nakshatra: str | None = None
    zodiac_sign: str | None = None
    manglik: bool | None = None

    @property
    def effective_moon_sign(self) -> str | None:
        sign = _normalise(self.moon_sign) or _normalise(self.zodiac_sign)
        return sign if sign in ZODIAC_SIGNS else None

    @property
    def effective_nakshatra(self) -> str | None:
        star = _normalise(self.nakshatra)
        return star if star in NAKSHATRAS else None


def moon_sign_compatibility(sign_a: str, sign_b: str) -> float:
    """Return the table score for two moon signs.

    Raises ``ValueError`` for names that are not zodiac signs.
    """
    a = ZODIAC_SIGNS.index(_normalise(sign_a))
    b = ZODIAC_SIGNS.index(_normalise(sign_b))
    gap = abs(a - b)
    distance = min(gap, 12 - gap)
    return _ASPECT_SCORES[distance]


def _tara_score(from_star: int, to_star: int) -> float:
    count = (to_star - from_star) % 27 + 1
    tara = count % 9
    if tara in _FAVOURABLE_TARAS:
        return 100.0
    if tara in _UNFAVOURABLE_TARAS:
        return 0.0
    return NEUTRAL_SCORE


def nakshatra_compatibility(star_a: str, star_b: str) -> float:
    """Average of the tara counted in both directions, 0-100."""
    a = NAKSHATRAS.index(_normalise(star_a))
    b = NAKSHATRAS.index(_normalise(star_b))
    return (_tara_score(a, b) + _tara_score(b, a)) / 2.0


class HoroscopeScorer:
    """Scores a pair of horoscopes on the 0-100 scale."""

    def score(self, seeker: HoroscopeData | None, candidate: HoroscopeData | None) -> float:
        if seeker is None or candidate is None:
            return NEUTRAL_SCORE

        moon_a, moon_b = seeker.effective_moon_sign, candidate.effective_moon_sign
        star_a, star_b = seeker.effective_nakshatra, candidate.effective_nakshatra

        moon = moon_sign_compatibility(moon_a, moon_b) if moon_a and moon_b else None
        star = nakshatra_compatibility(star_a, star_b) if star_a and star_b else None

        if moon is None and star is None:
            return NEUTRAL_SCORE
        if moon is None:
            blended = star
        elif star is None:
            blended = moon
        else:
            blended = MOON_SIGN_WEIGHT * moon + NAKSHATRA_WEIGHT * star

        if (
            seeker.manglik is not None
            and candidate.manglik is not None
            and seeker.manglik != candidate.manglik
        ):
            blended -= MANGLIK_MISMATCH_PENALTY

        return max(0.0, min(100.0, blended))
