"""
MatriMatch — Match status state machine

Each member's action toward the other is tracked independently; the
pair-level status is derived from the two actions:

  blocked  >  mutual  >  disliked  >  super_liked  >  liked  >  pending

``mutual`` is never set directly.  ``blocked`` is absorbing.  ``expired`` is
reached only by time, from a pending pair nobody acted on (see
``MatchStateStore.expire_stale``).
"""

PENDING = "pending"
LIKED = "liked"
SUPER_LIKED = "super_liked"
DISLIKED = "disliked"
BLOCKED = "blocked"
MUTUAL = "mutual"
EXPIRED = "expired"

NO_ACTION = "none"
USER_ACTIONS = (LIKED, SUPER_LIKED, DISLIKED, BLOCKED)
POSITIVE_ACTIONS = frozenset({LIKED, SUPER_LIKED})


def is_mutual(initiator_action: str, candidate_action: str) -> bool:
    return initiator_action in POSITIVE_ACTIONS and candidate_action in POSITIVE_ACTIONS


def derive_status(current: str, initiator_action: str, candidate_action: str) -> str:
    if current == BLOCKED:
        return BLOCKED

    actions = (initiator_action, candidate_action)
    if BLOCKED in actions:
        return BLOCKED
    if is_mutual(initiator_action, candidate_action):
        return MUTUAL
    if DISLIKED in actions:
        return DISLIKED
    if SUPER_LIKED in actions:
        return SUPER_LIKED
    if LIKED in actions:
        return LIKED
    if current == EXPIRED:
        return EXPIRED
    return PENDING


def can_communicate(status: str, unlocked: bool) -> bool:
    if status == BLOCKED:
        return False
    return status == MUTUAL or unlocked

