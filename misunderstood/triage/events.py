"""Read access to the conversation event log."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import ConversationEvent

Window = Literal["before_or_at", "after"]


class EventLogReader(Protocol):
    """Queries the triage service needs from the conversation event log."""

    def find_incoming_turn(self, bot_id: str, event_id: str) -> ConversationEvent | None: ...

    def list_turns_in_window(
        self,
        bot_id: str,
        thread_id: str | None,
        session_id: str | None,
        window: Window,
        anchor_time: datetime,
        limit: int,
    ) -> list[ConversationEvent]: ...


class SqlEventLogReader:
    """SQLAlchemy implementation of :class:`EventLogReader`."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def find_incoming_turn(self, bot_id: str, event_id: str) -> ConversationEvent | None:
        stmt = (
            select(ConversationEvent)
            .where(
                ConversationEvent.bot_id == bot_id,
                ConversationEvent.incoming_event_id == event_id,
                ConversationEvent.direction == "incoming",
            )
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def list_turns_in_window(
        self,
        bot_id: str,
        thread_id: str | None,
        session_id: str | None,
        window: Window,
        anchor_time: datetime,
        limit: int,
    ) -> list[ConversationEvent]:
        """Return up to ``limit`` turns nearest to ``anchor_time`` on one side.

        ``before_or_at`` walks backwards from the anchor (newest first) and
        ``after`` walks forwards (oldest first); ids break timestamp ties.
        """

        stmt = select(ConversationEvent).where(
            ConversationEvent.bot_id == bot_id,
            ConversationEvent.thread_id == thread_id,
            ConversationEvent.session_id == session_id,
        )
        if window == "before_or_at":
            stmt = stmt.where(ConversationEvent.created_on <= anchor_time).order_by(
                ConversationEvent.created_on.desc(), ConversationEvent.id.desc()
            )
        elif window == "after":
            stmt = stmt.where(ConversationEvent.created_on > anchor_time).order_by(
                ConversationEvent.created_on.asc(), ConversationEvent.id.asc()
            )
        else:
            raise ValueError(f"Unknown window {window!r}")
        return list(self._session.scalars(stmt.limit(limit)))


__all__ = ["EventLogReader", "SqlEventLogReader", "Window"]
