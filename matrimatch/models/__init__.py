"""
MatriMatch — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from matrimatch.models.member import Member, Profile, Preference, Horoscope
from matrimatch.models.match import MatchRecord
from matrimatch.models.notification import Conversation, NotificationRecord

__all__ = [
    "Member",
    "Profile",
    "Preference",
    "Horoscope",
    "MatchRecord",
    "Conversation",
    "NotificationRecord",
]
