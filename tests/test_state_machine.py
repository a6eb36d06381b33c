"""Unit tests for the pair status state machine."""
import pytest

from matrimatch.services import state_machine as sm


class TestDeriveStatus:
    """Pair status derived from the two directional actions."""

    def test_no_actions_is_pending(self):
        assert sm.derive_status(sm.PENDING, sm.NO_ACTION, sm.NO_ACTION) == sm.PENDING

    @pytest.mark.parametrize(
        "a,b",
        [(sm.LIKED, sm.LIKED), (sm.LIKED, sm.SUPER_LIKED), (sm.SUPER_LIKED, sm.SUPER_LIKED)],
    )
    def test_two_positive_actions_are_mutual(self, a, b):
        assert sm.derive_status(sm.PENDING, a, b) == sm.MUTUAL
        assert sm.derive_status(sm.PENDING, b, a) == sm.MUTUAL

    def test_one_sided_like(self):
        assert sm.derive_status(sm.PENDING, sm.LIKED, sm.NO_ACTION) == sm.LIKED

    def test_dislike_outranks_like(self):
        assert sm.derive_status(sm.LIKED, sm.LIKED, sm.DISLIKED) == sm.DISLIKED

    def test_block_is_absorbing(self):
        assert sm.derive_status(sm.BLOCKED, sm.LIKED, sm.LIKED) == sm.BLOCKED
        assert sm.derive_status(sm.MUTUAL, sm.BLOCKED, sm.LIKED) == sm.BLOCKED

    def test_expired_stays_expired_without_actions(self):
        assert sm.derive_status(sm.EXPIRED, sm.NO_ACTION, sm.NO_ACTION) == sm.EXPIRED


class TestCanCommunicate:
    """Who may message whom."""

    def test_mutual_can_communicate(self):
        assert sm.can_communicate(sm.MUTUAL, False)

    def test_unlock_allows_non_mutual(self):
        assert sm.can_communicate(sm.LIKED, True)

    def test_blocked_never_communicates(self):
        assert not sm.can_communicate(sm.BLOCKED, True)
