"""Database repository for flagged messages."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import FlaggedEvent
from ..models.enums import FlaggedMessageStatus
from ..models.flagged_event import utcnow
from . import schemas
from .filters import apply_filters

logger = logging.getLogger(__name__)

_CLEARED_RESOLUTION = {
    "resolution_type": None,
    "resolution": None,
    "resolution_params": None,
}


class FlaggedEventRepository(Protocol):
    """Abstraction for persisting flagged messages."""

    def register(self, record: schemas.FlaggedEventData) -> bool: ...

    def purge(self, bot_id: str, status: FlaggedMessageStatus) -> int: ...

    def update_statuses(
        self,
        bot_id: str,
        ids: Sequence[int],
        status: FlaggedMessageStatus,
        resolution_data: schemas.ResolutionData | None = None,
    ) -> int: ...

    def mark_applied(self, bot_id: str, ids: Sequence[int]) -> int: ...

    def get(self, bot_id: str, event_id: int) -> schemas.FlaggedEventRead | None: ...

    def list_events(
        self,
        bot_id: str,
        language: str,
        status: FlaggedMessageStatus | None = None,
        options: schemas.FilteringOptions | None = None,
    ) -> list[schemas.FlaggedEventRead]: ...

    def list_pending(self, bot_id: str) -> list[schemas.FlaggedEventRead]: ...

    def count_events(
        self,
        bot_id: str,
        language: str,
        options: schemas.FilteringOptions | None = None,
    ) -> dict[str, int]: ...

    def list_exportable(self, bot_id: str) -> list[schemas.FlaggedEventData]: ...


class SqlFlaggedEventRepository:
    """SQLAlchemy implementation of :class:`FlaggedEventRepository`.

    The repository never commits; the caller owns the transaction.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # Writes -------------------------------------------------------------------
    def register(self, record: schemas.FlaggedEventData) -> bool:
        """Insert ``record`` unless its lookup key is already known.

        Returns ``True`` when a row was inserted.
        """

        lookup = {
            "bot_id": record.bot_id,
            "language": record.language,
            "preview": record.preview,
        }
        stmt = (
            select(FlaggedEvent.status, func.count(FlaggedEvent.id))
            .where(
                FlaggedEvent.bot_id == record.bot_id,
                FlaggedEvent.language == record.language,
                FlaggedEvent.preview == record.preview,
            )
            .group_by(FlaggedEvent.status)
        )
        existing = {status: count for status, count in self._session.execute(stmt)}
        treated = sum(
            count for status, count in existing.items() if status != FlaggedMessageStatus.NEW
        )
        if treated:
            logger.info(
                "Not inserting event with properties %s as it has already been treated before",
                lookup,
            )
            return False
        if existing:
            logger.info("Not inserting event with properties %s as it is already flagged", lookup)
            return False

        row = FlaggedEvent(
            event_id=record.event_id,
            reason=record.reason,
            status=record.status,
            resolution_type=record.resolution_type,
            resolution=record.resolution,
            resolution_params=record.resolution_params,
            **lookup,
        )
        try:
            with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            logger.info(
                "Not inserting event with properties %s as a concurrent registration won",
                lookup,
            )
            return False
        return True

    def purge(self, bot_id: str, status: FlaggedMessageStatus) -> int:
        result = self._session.execute(
            delete(FlaggedEvent).where(
                FlaggedEvent.bot_id == bot_id, FlaggedEvent.status == status
            )
        )
        return result.rowcount or 0

    def update_statuses(
        self,
        bot_id: str,
        ids: Sequence[int],
        status: FlaggedMessageStatus,
        resolution_data: schemas.ResolutionData | None = None,
    ) -> int:
        """Move the rows ``ids`` of ``bot_id`` to ``status``.

        Only ``pending`` rows carry a resolution: any other status clears the
        resolution fields whatever ``resolution_data`` holds.
        """

        if not ids:
            return 0
        if status != FlaggedMessageStatus.PENDING or resolution_data is None:
            values = dict(_CLEARED_RESOLUTION)
        else:
            values = {
                "resolution_type": resolution_data.resolution_type,
                "resolution": resolution_data.resolution,
                "resolution_params": resolution_data.resolution_params,
            }
        result = self._session.execute(
            update(FlaggedEvent)
            .where(FlaggedEvent.bot_id == bot_id, FlaggedEvent.id.in_(list(ids)))
            .values(status=status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        self._session.expire_all()
        return result.rowcount or 0

    def mark_applied(self, bot_id: str, ids: Sequence[int]) -> int:
        """Flag rows as ``applied`` keeping the resolution they were applied with."""

        if not ids:
            return 0
        result = self._session.execute(
            update(FlaggedEvent)
            .where(FlaggedEvent.bot_id == bot_id, FlaggedEvent.id.in_(list(ids)))
            .values(status=FlaggedMessageStatus.APPLIED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self._session.expire_all()
        return result.rowcount or 0

    # Reads --------------------------------------------------------------------
    def get(self, bot_id: str, event_id: int) -> schemas.FlaggedEventRead | None:
        row = self._session.scalars(
            select(FlaggedEvent)
            .where(FlaggedEvent.bot_id == bot_id, FlaggedEvent.id == event_id)
            .limit(1)
        ).first()
        if row is None:
            return None
        return schemas.FlaggedEventRead.model_validate(row)

    def list_events(
        self,
        bot_id: str,
        language: str,
        status: FlaggedMessageStatus | None = None,
        options: schemas.FilteringOptions | None = None,
    ) -> list[schemas.FlaggedEventRead]:
        stmt = select(FlaggedEvent).where(
            FlaggedEvent.bot_id == bot_id, FlaggedEvent.language == language
        )
        if status is not None:
            stmt = stmt.where(FlaggedEvent.status == status)
        stmt = apply_filters(stmt, options).order_by(
            FlaggedEvent.updated_at.desc(), FlaggedEvent.id.desc()
        )
        return [schemas.FlaggedEventRead.model_validate(row) for row in self._session.scalars(stmt)]

    def list_pending(self, bot_id: str) -> list[schemas.FlaggedEventRead]:
        stmt = (
            select(FlaggedEvent)
            .where(
                FlaggedEvent.bot_id == bot_id,
                FlaggedEvent.status == FlaggedMessageStatus.PENDING,
            )
            .order_by(FlaggedEvent.id.asc())
        )
        return [schemas.FlaggedEventRead.model_validate(row) for row in self._session.scalars(stmt)]

    def count_events(
        self,
        bot_id: str,
        language: str,
        options: schemas.FilteringOptions | None = None,
    ) -> dict[str, int]:
        stmt = select(FlaggedEvent.status, func.count(FlaggedEvent.id)).where(
            FlaggedEvent.bot_id == bot_id, FlaggedEvent.language == language
        )
        stmt = apply_filters(stmt, options).group_by(FlaggedEvent.status)
        return {
            FlaggedMessageStatus(status).value: int(count)
            for status, count in self._session.execute(stmt)
        }

    def list_exportable(self, bot_id: str) -> list[schemas.FlaggedEventData]:
        stmt = (
            select(FlaggedEvent)
            .where(
                FlaggedEvent.bot_id == bot_id,
                FlaggedEvent.status == FlaggedMessageStatus.APPLIED,
                FlaggedEvent.resolution.is_not(None),
                FlaggedEvent.resolution_type.is_not(None),
            )
            .order_by(FlaggedEvent.id.asc())
        )
        return [schemas.FlaggedEventData.model_validate(row) for row in self._session.scalars(stmt)]


__all__ = ["FlaggedEventRepository", "SqlFlaggedEventRepository"]
