# apps/core/services/actor.py
"""
Actor

Identity recorded in work order history and audit events.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from django.conf import settings


def coerce_uuid(value) -> Optional[uuid.UUID]:
    """Parse a UUID, returning None for anything that is not one."""
    if value in (None, ''):
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


@dataclass(frozen=True)
class Actor:
    id: Optional[uuid.UUID] = None
    name: Optional[str] = None

    @classmethod
    def automation(cls) -> 'Actor':
        return cls(id=None, name=settings.MAINTENANCE_SETTINGS['AUTOMATION_ACTOR_NAME'])

    @classmethod
    def from_user(cls, user_id=None, name: str = None) -> 'Actor':
        return cls(id=coerce_uuid(user_id), name=name or None)
