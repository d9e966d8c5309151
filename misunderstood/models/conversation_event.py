"""Read-only mapping of the conversation event log.

The ``events`` table belongs to the conversation pipeline.  It is mapped here
so the triage service can rebuild the turns surrounding a flagged message; the
triage code never writes to it.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from . import Base

EVENTS_TABLE_NAME = "events"


class ConversationEvent(Base):
    """One incoming or outgoing message event of a conversation."""

    __tablename__ = EVENTS_TABLE_NAME
    __table_args__ = (
        Index("ix_events_thread_window", "bot_id", "thread_id", "session_id", "created_on"),
        Index("ix_events_incoming", "bot_id", "incoming_event_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bot_id: Mapped[str] = mapped_column(String(length=255), nullable=False)
    thread_id: Mapped[str | None] = mapped_column(String(length=255))
    session_id: Mapped[str | None] = mapped_column(String(length=255))
    incoming_event_id: Mapped[str | None] = mapped_column(String(length=255))
    direction: Mapped[str] = mapped_column(String(length=16), nullable=False)
    event: Mapped[Any] = mapped_column(JSON, nullable=False)
    created_on: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)


__all__ = ["ConversationEvent", "EVENTS_TABLE_NAME"]
