"""Unit tests for horoscope compatibility."""
import pytest

from matrimatch.services.horoscope_service import (
    HoroscopeData,
    HoroscopeScorer,
    ZODIAC_SIGNS,
    moon_sign_compatibility,
    nakshatra_compatibility,
)


class TestMoonSignTable:
    """Tests for the moon-sign compatibility table."""

    def test_traditionally_compatible_pair(self):
        assert moon_sign_compatibility("aries", "leo") > 70

    def test_traditionally_incompatible_pair(self):
        assert moon_sign_compatibility("aries", "cancer") < 50

    def test_table_is_symmetric(self):
        for a in ZODIAC_SIGNS:
            for b in ZODIAC_SIGNS:
                assert moon_sign_compatibility(a, b) == moon_sign_compatibility(b, a)

    def test_case_insensitive(self):
        assert moon_sign_compatibility("Aries", "LEO") == moon_sign_compatibility("aries", "leo")

    def test_unknown_sign_rejected(self):
        with pytest.raises(ValueError):
            moon_sign_compatibility("aries", "ophiuchus")


class TestNakshatra:
    """Tests for the tara-based nakshatra score."""

    def test_score_in_range(self):
        score = nakshatra_compatibility("ashwini", "rohini")
        assert 0.0 <= score <= 100.0

    def test_symmetric(self):
        assert nakshatra_compatibility("ashwini", "magha") == nakshatra_compatibility("magha", "ashwini")


class TestHoroscopeScorer:
    """Tests for the blended horoscope dimension."""

    def test_missing_data_is_neutral(self):
        scorer = HoroscopeScorer()
        assert scorer.score(None, HoroscopeData(moon_sign="leo")) == 50.0
        assert scorer.score(HoroscopeData(), HoroscopeData()) == 50.0

    def test_moon_only_uses_table(self):
        scorer = HoroscopeScorer()
        result = scorer.score(HoroscopeData(moon_sign="aries"), HoroscopeData(moon_sign="leo"))
        assert result == moon_sign_compatibility("aries", "leo")

    def test_zodiac_sign_used_when_moon_sign_missing(self):
        scorer = HoroscopeScorer()
        result = scorer.score(HoroscopeData(zodiac_sign="aries"), HoroscopeData(moon_sign="leo"))
        assert result == moon_sign_compatibility("aries", "leo")

    def test_blend_weights(self):
        scorer = HoroscopeScorer()
        a = HoroscopeData(moon_sign="aries", nakshatra="ashwini")
        b = HoroscopeData(moon_sign="leo", nakshatra="magha")
        expected = 0.6 * moon_sign_compatibility("aries", "leo") + 0.4 * nakshatra_compatibility(
            "ashwini", "magha"
        )
        assert scorer.score(a, b) == pytest.approx(expected)

    def test_manglik_mismatch_penalised(self):
        scorer = HoroscopeScorer()
        matched = scorer.score(
            HoroscopeData(moon_sign="aries", manglik=True), HoroscopeData(moon_sign="leo", manglik=True)
        )
        mismatched = scorer.score(
            HoroscopeData(moon_sign="aries", manglik=True), HoroscopeData(moon_sign="leo", manglik=False)
        )
        assert matched - mismatched == pytest.approx(20.0)
