"""Filtering shared by the listing and counting queries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import Select

from ..models import FlaggedEvent
from ..models.enums import EXPLICIT_FEEDBACK_REASON
from .schemas import FilteringOptions

S = TypeVar("S", bound=Select)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def apply_filters(stmt: S, options: FilteringOptions | None = None) -> S:
    """Restrict ``stmt`` by update date range and reason bucket.

    The date range only applies when both bounds are given and is inclusive.
    Asking for explicit negative feedback returns exactly that reason; asking
    for any other reason returns every automatically detected reason.
    """

    if options is None:
        return stmt

    if options.start_date is not None and options.end_date is not None:
        stmt = stmt.where(
            FlaggedEvent.updated_at.between(
                _as_utc(options.start_date), _as_utc(options.end_date)
            )
        )

    if options.reason == EXPLICIT_FEEDBACK_REASON:
        stmt = stmt.where(FlaggedEvent.reason == EXPLICIT_FEEDBACK_REASON)
    elif options.reason is not None:
        stmt = stmt.where(
            (FlaggedEvent.reason != EXPLICIT_FEEDBACK_REASON) | FlaggedEvent.reason.is_(None)
        )
    return stmt


__all__ = ["apply_filters"]
