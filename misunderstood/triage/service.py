"""High-level orchestration of the misunderstood-message triage."""

from __future__ import annotations

from collections.abc import Sequence

from ..knowledge.store import KnowledgeStore
from ..models.enums import FlaggedMessageStatus
from . import schemas
from .context import EventContextBuilder
from .events import EventLogReader
from .reconciliation import Reconciler
from .repository import FlaggedEventRepository


class MisunderstoodService:
    """Coordinates the flagged-message store, the event log and the knowledge base."""

    def __init__(
        self,
        repository: FlaggedEventRepository,
        event_log: EventLogReader,
        knowledge: KnowledgeStore,
    ) -> None:
        self._repository = repository
        self._context = EventContextBuilder(repository, event_log)
        self._reconciler = Reconciler(repository, knowledge)

    # ------------------------------------------------------------------
    # Registration and triage

    def register(self, record: schemas.FlaggedEventData) -> bool:
        return self._repository.register(record)

    def purge(self, bot_id: str, status: FlaggedMessageStatus) -> int:
        return self._repository.purge(bot_id, status)

    def set_status(
        self,
        bot_id: str,
        ids: Sequence[int],
        status: FlaggedMessageStatus,
        resolution_data: schemas.ResolutionData | None = None,
    ) -> int:
        return self._repository.update_statuses(bot_id, ids, status, resolution_data)

    # ------------------------------------------------------------------
    # Queries

    def get(self, bot_id: str, event_id: int) -> schemas.FlaggedEventRead | None:
        return self._repository.get(bot_id, event_id)

    def list_events(
        self,
        bot_id: str,
        language: str,
        status: FlaggedMessageStatus | None = None,
        options: schemas.FilteringOptions | None = None,
    ) -> list[schemas.FlaggedEventRead]:
        return self._repository.list_events(bot_id, language, status, options)

    def count_events(
        self,
        bot_id: str,
        language: str,
        options: schemas.FilteringOptions | None = None,
    ) -> dict[str, int]:
        return self._repository.count_events(bot_id, language, options)

    def get_details(self, bot_id: str, event_id: int) -> schemas.FlaggedEventDetail | None:
        return self._context.build(bot_id, event_id)

    # ------------------------------------------------------------------
    # Reconciliation

    def export_events(self, bot_id: str) -> list[schemas.FlaggedEventData]:
        return self._reconciler.export(bot_id)

    def import_events(self, bot_id: str, records: Sequence[schemas.FlaggedEventData]) -> int:
        return self._reconciler.import_events(bot_id, records)

    def apply_changes(self, bot_id: str) -> int:
        return self._reconciler.apply_changes(bot_id)
