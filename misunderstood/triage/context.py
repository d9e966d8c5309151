"""Rebuild the conversation around a flagged message for operator review."""

from __future__ import annotations

import json
import re
from typing import Any

from ..models import ConversationEvent
from . import schemas
from .events import EventLogReader
from .repository import FlaggedEventRepository

# More turns before the flagged message help understand what led to it.
TURNS_BEFORE = 6
TURNS_AFTER = 3

_TAG_RE = re.compile(r"<[^>]*>?")


def strip_html(text: str | None) -> str:
    return _TAG_RE.sub("", text or "")


def _as_document(value: Any) -> dict[str, Any]:
    if isinstance(value, (str, bytes)):
        value = json.loads(value)
    return value if isinstance(value, dict) else {}


def _context_message(turn: ConversationEvent, anchor_id: int) -> schemas.ContextMessage:
    document = _as_document(turn.event)
    payload = document.get("payload")
    return schemas.ContextMessage(
        direction=document.get("direction") or turn.direction,
        preview=strip_html(document.get("preview")),
        payload_message=payload.get("message") if isinstance(payload, dict) else None,
        is_current=turn.id == anchor_id,
    )


def _sort_key(turn: ConversationEvent) -> tuple:
    return (turn.created_on, turn.id)


class EventContextBuilder:
    """Assembles a flagged message with its surrounding conversation turns."""

    def __init__(self, repository: FlaggedEventRepository, event_log: EventLogReader) -> None:
        self._repository = repository
        self._event_log = event_log

    def build(self, bot_id: str, event_id: int) -> schemas.FlaggedEventDetail | None:
        """Return the flagged message ``event_id`` with its context.

        ``None`` when either the flagged message or the incoming turn it was
        raised from cannot be found.
        """

        record = self._repository.get(bot_id, event_id)
        if record is None or not record.event_id:
            return None

        anchor = self._event_log.find_incoming_turn(bot_id, record.event_id)
        if anchor is None:
            return None

        before = self._event_log.list_turns_in_window(
            bot_id, anchor.thread_id, anchor.session_id, "before_or_at", anchor.created_on, TURNS_BEFORE
        )
        after = self._event_log.list_turns_in_window(
            bot_id, anchor.thread_id, anchor.session_id, "after", anchor.created_on, TURNS_AFTER
        )
        turns = sorted([*before, *after], key=_sort_key)
        context = [_context_message(turn, anchor.id) for turn in turns]

        nlu = _as_document(anchor.event).get("nlu")
        nlu_contexts = (nlu or {}).get("includedContexts") if isinstance(nlu, dict) else None

        return schemas.FlaggedEventDetail(
            **record.model_dump(),
            context=context,
            nlu_contexts=list(nlu_contexts or []),
        )


__all__ = ["EventContextBuilder", "TURNS_AFTER", "TURNS_BEFORE", "strip_html"]
