"""SQLAlchemy model for flagged (misunderstood) messages.

Rows are keyed by an autoincrement id.  ``(bot_id, language, preview)`` is the
lookup key used to deduplicate registrations; a partial unique index keeps at
most one ``new`` row per key even when two registrations race.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from . import Base
from .enums import FlaggedMessageStatus, FlagReason, ResolutionType

TABLE_NAME = "misunderstood"


def utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


def _enum_column(enum_cls: type, length: int) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class FlaggedEvent(Base):
    """A message the bot failed to understand, tracked through triage.

    Attributes:
        event_id: Reference to the originating conversation event.
        bot_id: Bot the message was sent to.
        language: Language the message was handled in.
        preview: Short text of the message, used for display and dedup.
        reason: Why the message was flagged.
        status: Triage lifecycle state.
        resolution_type: ``qna`` or ``intent`` while a resolution exists.
        resolution: Name of the intent or id of the Q&A entry.
        resolution_params: Optional structured parameters of the resolution.
    """

    __tablename__ = TABLE_NAME
    __table_args__ = (
        Index("ix_misunderstood_lookup", "bot_id", "language", "preview"),
        Index(
            "ux_misunderstood_new_lookup",
            "bot_id",
            "language",
            "preview",
            unique=True,
            sqlite_where=text("status = 'new'"),
            postgresql_where=text("status = 'new'"),
        ),
        Index("ix_misunderstood_bot_status", "bot_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str | None] = mapped_column(String(length=255))
    bot_id: Mapped[str] = mapped_column(String(length=255), nullable=False)
    language: Mapped[str] = mapped_column(String(length=32), nullable=False)
    preview: Mapped[str] = mapped_column(Text(), nullable=False)
    reason: Mapped[FlagReason | None] = mapped_column(_enum_column(FlagReason, 32))
    status: Mapped[FlaggedMessageStatus] = mapped_column(
        _enum_column(FlaggedMessageStatus, 16),
        nullable=False,
        default=FlaggedMessageStatus.NEW,
        server_default=text("'new'"),
    )
    resolution_type: Mapped[ResolutionType | None] = mapped_column(
        _enum_column(ResolutionType, 16)
    )
    resolution: Mapped[str | None] = mapped_column(String(length=255))
    resolution_params: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )


__all__ = ["FlaggedEvent", "TABLE_NAME", "utcnow"]
