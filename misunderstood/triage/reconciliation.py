"""Synchronise triage records with the bot knowledge base.

Import is two-phase: every resolution target is validated first and nothing
is written when one is missing; then resolutions are applied to the knowledge
base one at a time (Q&A entries first, intents second) and the records are
registered for the target bot.  The apply phase is not rolled back when a
write fails halfway.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..knowledge.store import KnowledgeStore, ResourceKind
from ..models.enums import ResolutionType
from . import schemas
from .repository import FlaggedEventRepository

logger = logging.getLogger(__name__)


class MissingResolutionTargetsError(ValueError):
    """Raised when imported records point to unknown intents or Q&A entries."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            f"Bot is missing the following intents or QnAs: {', '.join(self.missing)}"
        )


def has_resolution(record: schemas.FlaggedEventData) -> bool:
    return bool(record.resolution) and record.resolution_type is not None


def partition_by_type(
    records: Iterable[schemas.FlaggedEventData],
) -> tuple[list[schemas.FlaggedEventData], list[schemas.FlaggedEventData]]:
    """Split ``records`` into Q&A resolutions and intent resolutions."""

    qna: list[schemas.FlaggedEventData] = []
    intents: list[schemas.FlaggedEventData] = []
    for record in records:
        (qna if record.resolution_type == ResolutionType.QNA else intents).append(record)
    return qna, intents


class Reconciler:
    """Moves resolved records between the triage store and the knowledge base."""

    def __init__(self, repository: FlaggedEventRepository, knowledge: KnowledgeStore) -> None:
        self._repository = repository
        self._knowledge = knowledge

    def export(self, bot_id: str) -> list[schemas.FlaggedEventData]:
        """Return the applied and resolved records of ``bot_id``."""

        return self._repository.list_exportable(bot_id)

    def import_events(self, bot_id: str, records: Sequence[schemas.FlaggedEventData]) -> int:
        """Apply exported ``records`` to ``bot_id`` and register them.

        Returns the number of records that carried a resolution; the others
        are dropped.
        """

        resolved = [record for record in records if has_resolution(record)]
        dropped = len(records) - len(resolved)
        if dropped:
            logger.info("Ignoring %d unresolved record(s) in import for bot %s", dropped, bot_id)
        if not resolved:
            return 0

        self._assert_targets_exist(bot_id, resolved)
        self._apply(bot_id, resolved)

        for record in resolved:
            self._repository.register(record.model_copy(update={"bot_id": bot_id}))
        logger.info("Imported %d record(s) into bot %s", len(resolved), bot_id)
        return len(resolved)

    def apply_changes(self, bot_id: str) -> int:
        """Push every pending resolution of ``bot_id`` into the knowledge base.

        Applied records keep their resolution so they can be exported.
        """

        pending = self._repository.list_pending(bot_id)
        resolved = [record for record in pending if has_resolution(record)]
        for record in pending:
            if not has_resolution(record):
                logger.warning(
                    "Pending record %s of bot %s has no resolution; leaving it pending",
                    record.id,
                    bot_id,
                )
        if not resolved:
            return 0

        self._apply(bot_id, resolved)
        self._repository.mark_applied(bot_id, [record.id for record in resolved])
        logger.info("Applied %d pending record(s) to bot %s", len(resolved), bot_id)
        return len(resolved)

    # Helpers ------------------------------------------------------------------
    def _assert_targets_exist(
        self, bot_id: str, records: Sequence[schemas.FlaggedEventData]
    ) -> None:
        known = {
            ResolutionType.INTENT: set(self._knowledge.list_resources(bot_id, ResourceKind.INTENT)),
            ResolutionType.QNA: set(self._knowledge.list_resources(bot_id, ResourceKind.QNA)),
        }
        missing: list[str] = []
        for record in records:
            targets = known.get(record.resolution_type, set())
            if record.resolution not in targets and record.resolution not in missing:
                missing.append(record.resolution or "")
        if missing:
            raise MissingResolutionTargetsError(missing)

    def _apply(self, bot_id: str, records: Sequence[schemas.FlaggedEventData]) -> None:
        # Writes rewrite shared knowledge files; never run them concurrently.
        qna, intents = partition_by_type(records)
        for record in qna:
            self._knowledge.apply_qna(record, bot_id)
        for record in intents:
            self._knowledge.apply_intent(record, bot_id)


__all__ = [
    "MissingResolutionTargetsError",
    "Reconciler",
    "has_resolution",
    "partition_by_type",
]
