"""
MatriMatch — Error taxonomy

``InputError`` subclasses are reported to the caller and never retried by the
worker.  ``TransientError`` subclasses signal infrastructure trouble and are
retried with the task kind's backoff.
"""

from __future__ import annotations


class MatrimatchError(Exception):
    """Base class for all domain errors."""


class InputError(MatrimatchError):
    """Bad or ineligible input; retrying will not help."""

    status_code: int = 400


class MemberNotFoundError(InputError):
    status_code = 404

    def __init__(self, member_id) -> None:
        super().__init__(f"Member {member_id} not found")
        self.member_id = member_id


class ProfileIncompleteError(InputError):
    status_code = 422

    def __init__(self, member_id, reason: str) -> None:
        super().__init__(f"Member {member_id} is not eligible for matching: {reason}")
        self.member_id = member_id
        self.reason = reason


class NotificationNotFoundError(InputError):
    status_code = 404

    def __init__(self, notification_id) -> None:
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id


class InvalidActionError(InputError):
    status_code = 422


class BlockedPairError(InputError):
    status_code = 409

    def __init__(self, actor_id, target_id) -> None:
        super().__init__(f"Pair {actor_id} / {target_id} is blocked")
        self.actor_id = actor_id
        self.target_id = target_id


class PremiumRequiredError(InputError):
    status_code = 403


class TransientError(MatrimatchError):
    """Infrastructure failure that is worth retrying."""


class DeliveryError(TransientError):
    """Push or e-mail provider rejected or failed a delivery."""
