"""Operator API for reviewing and resolving misunderstood messages."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache

from fastapi import APIRouter, HTTPException, Query, Response, status
from sqlalchemy.orm import Session, sessionmaker

from ..core.db import ensure_schema, get_engine, get_sessionmaker
from ..core.settings import load_settings
from ..knowledge import FileKnowledgeStore, KnowledgeResourceNotFoundError, KnowledgeStore
from ..models.enums import FlaggedMessageStatus, FlagReason
from ..triage import schemas
from ..triage.events import SqlEventLogReader
from ..triage.reconciliation import MissingResolutionTargetsError
from ..triage.repository import SqlFlaggedEventRepository
from ..triage.service import MisunderstoodService

router = APIRouter(prefix="/api/bots/{bot_id}/misunderstood", tags=["misunderstood"])

logger = logging.getLogger(__name__)


@lru_cache
def _get_session_factory() -> sessionmaker[Session]:
    settings = load_settings()
    if not settings.database_url:
        raise HTTPException(status_code=500, detail="DATABASE_URL not configured")
    engine = get_engine(settings.database_url, pool_pre_ping=True)
    ensure_schema(engine)
    return get_sessionmaker(engine)


def _get_knowledge_store() -> KnowledgeStore:
    return FileKnowledgeStore(load_settings().knowledge_dir)


@contextmanager
def _service_context() -> Iterator[MisunderstoodService]:
    session = _get_session_factory()()
    service = MisunderstoodService(
        SqlFlaggedEventRepository(session),
        SqlEventLogReader(session),
        _get_knowledge_store(),
    )
    try:
        yield service
        session.commit()
    except MissingResolutionTargetsError as exc:
        session.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except KnowledgeResourceNotFoundError as exc:
        session.rollback()
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except HTTPException:
        session.rollback()
        raise
    except Exception as exc:
        session.rollback()
        logger.exception("Misunderstood request failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        session.close()


def _filtering_options(
    start_date: datetime | None,
    end_date: datetime | None,
    reason: FlagReason | None,
) -> schemas.FilteringOptions:
    return schemas.FilteringOptions(start_date=start_date, end_date=end_date, reason=reason)


@router.post("/events", status_code=status.HTTP_204_NO_CONTENT)
def register_event(bot_id: str, payload: schemas.FlaggedEventCreate) -> Response:
    """Record a message the bot failed to understand."""

    record = schemas.FlaggedEventData(bot_id=bot_id, **payload.model_dump())
    with _service_context() as service:
        service.register(record)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/events/count", response_model=dict[str, int])
def count_events(
    bot_id: str,
    language: str,
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    reason: FlagReason | None = None,
) -> dict[str, int]:
    with _service_context() as service:
        return service.count_events(
            bot_id, language, _filtering_options(start_date, end_date, reason)
        )


@router.get("/events", response_model=list[schemas.FlaggedEventRead])
def list_events(
    bot_id: str,
    language: str,
    event_status: FlaggedMessageStatus | None = Query(default=None, alias="status"),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    reason: FlagReason | None = None,
) -> list[schemas.FlaggedEventRead]:
    with _service_context() as service:
        return service.list_events(
            bot_id,
            language,
            event_status,
            _filtering_options(start_date, end_date, reason),
        )


@router.get("/events/{event_id}", response_model=schemas.FlaggedEventDetail)
def get_event_details(bot_id: str, event_id: int) -> schemas.FlaggedEventDetail:
    with _service_context() as service:
        detail = service.get_details(bot_id, event_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Event {event_id} not found")
    return detail


@router.post("/events/status", status_code=status.HTTP_204_NO_CONTENT)
def update_status(bot_id: str, payload: schemas.StatusUpdateRequest) -> Response:
    with _service_context() as service:
        service.set_status(bot_id, payload.ids, payload.status, payload.resolution_data)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/events", status_code=status.HTTP_204_NO_CONTENT)
def purge_events(
    bot_id: str,
    event_status: FlaggedMessageStatus = Query(alias="status"),
) -> Response:
    with _service_context() as service:
        deleted = service.purge(bot_id, event_status)
    logger.info("Deleted %d %s event(s) of bot %s", deleted, event_status.value, bot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/apply", response_model=schemas.ApplyResult)
def apply_changes(bot_id: str) -> schemas.ApplyResult:
    with _service_context() as service:
        applied = service.apply_changes(bot_id)
    return schemas.ApplyResult(applied=applied)


@router.get("/export", response_model=list[schemas.FlaggedEventData])
def export_events(bot_id: str) -> list[schemas.FlaggedEventData]:
    with _service_context() as service:
        return service.export_events(bot_id)


@router.post("/import", response_model=schemas.ImportResult)
def import_events(
    bot_id: str, payload: list[schemas.FlaggedEventData]
) -> schemas.ImportResult:
    with _service_context() as service:
        imported = service.import_events(bot_id, payload)
    return schemas.ImportResult(imported=imported)
