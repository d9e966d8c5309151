"""SQLAlchemy declarative base and triage models.

This package hosts the SQLAlchemy models used across the service.  It exposes a
single declarative ``Base`` class shared by the owned ``misunderstood`` table
and the read-only mapping of the external ``events`` table.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export the models so callers can import them via
# ``from misunderstood.models import FlaggedEvent``.
from .conversation_event import ConversationEvent
from .flagged_event import FlaggedEvent


__all__ = [
    "Base",
    "ConversationEvent",
    "FlaggedEvent",
]
