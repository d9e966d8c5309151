"""Knowledge base storage for intents and Q&A entries.

Each bot keeps its knowledge as JSON documents on disk::

    <root>/<bot_id>/intents/<intent name>.json
    <root>/<bot_id>/qna/<qna id>.json

Applying a resolution teaches the bot the misunderstood sentence: it becomes
a new question of the Q&A entry or a new utterance of the intent.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..triage.schemas import FlaggedEventData

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    INTENT = "intent"
    QNA = "qna"


_DIRECTORIES = {
    ResourceKind.INTENT: "intents",
    ResourceKind.QNA: "qna",
}


class KnowledgeResourceNotFoundError(LookupError):
    """Raised when a resolution targets an intent or Q&A entry that does not exist."""

    def __init__(self, kind: ResourceKind, name: str) -> None:
        super().__init__(f"{kind.value} '{name}' does not exist")
        self.kind = kind
        self.name = name


class KnowledgeStore(Protocol):
    """Operations the triage service needs from the knowledge base."""

    def list_resources(self, bot_id: str, kind: ResourceKind | str) -> list[str]: ...

    def apply_qna(self, record: FlaggedEventData, bot_id: str) -> None: ...

    def apply_intent(self, record: FlaggedEventData, bot_id: str) -> None: ...


def _check_name(name: str) -> str:
    if not name or name in {".", ".."} or "/" in name or "\\" in name:
        raise ValueError(f"Invalid knowledge resource name {name!r}")
    return name


def _append_unique(values: list[Any], value: Any) -> bool:
    if value in values:
        return False
    values.append(value)
    return True


class FileKnowledgeStore:
    """Filesystem implementation of :class:`KnowledgeStore`."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _directory(self, bot_id: str, kind: ResourceKind | str) -> Path:
        try:
            resource_kind = ResourceKind(kind)
        except ValueError as exc:
            raise ValueError(f"Unknown knowledge resource kind {kind!r}") from exc
        return self._root / _check_name(bot_id) / _DIRECTORIES[resource_kind]

    def path_for(self, bot_id: str, kind: ResourceKind | str, name: str) -> Path:
        return self._directory(bot_id, kind) / f"{_check_name(name)}.json"

    # Listing -----------------------------------------------------------------
    def list_resources(self, bot_id: str, kind: ResourceKind | str) -> list[str]:
        """Return the names of the ``kind`` resources defined for ``bot_id``."""

        directory = self._directory(bot_id, kind)
        if not directory.is_dir():
            return []
        return sorted(path.stem for path in directory.glob("*.json") if path.is_file())

    # Documents ---------------------------------------------------------------
    def read(self, bot_id: str, kind: ResourceKind, name: str) -> dict[str, Any]:
        path = self.path_for(bot_id, kind, name)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise KnowledgeResourceNotFoundError(kind, name) from exc

    def write(self, bot_id: str, kind: ResourceKind, name: str, document: dict[str, Any]) -> None:
        """Replace the document ``name`` atomically."""

        path = self.path_for(bot_id, kind, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # Resolutions -------------------------------------------------------------
    def apply_qna(self, record: FlaggedEventData, bot_id: str) -> None:
        """Add the misunderstood sentence as a question of the Q&A entry."""

        name = record.resolution or ""
        document = self.read(bot_id, ResourceKind.QNA, name)
        data = document.setdefault("data", {})
        questions = data.setdefault("questions", {}).setdefault(record.language, [])
        if _append_unique(questions, record.preview):
            self.write(bot_id, ResourceKind.QNA, name, document)
            logger.info("Added question to Q&A %s of bot %s", name, bot_id)

    def apply_intent(self, record: FlaggedEventData, bot_id: str) -> None:
        """Add the misunderstood sentence as an utterance of the intent.

        Contexts listed in ``resolution_params["contexts"]`` are added to the
        intent as well.
        """

        name = record.resolution or ""
        document = self.read(bot_id, ResourceKind.INTENT, name)
        utterances = document.setdefault("utterances", {}).setdefault(record.language, [])
        changed = _append_unique(utterances, record.preview)

        params = record.resolution_params if isinstance(record.resolution_params, dict) else {}
        contexts = document.setdefault("contexts", [])
        for context in params.get("contexts") or []:
            changed = _append_unique(contexts, context) or changed

        if changed:
            self.write(bot_id, ResourceKind.INTENT, name, document)
            logger.info("Added utterance to intent %s of bot %s", name, bot_id)


__all__ = [
    "FileKnowledgeStore",
    "KnowledgeResourceNotFoundError",
    "KnowledgeStore",
    "ResourceKind",
]
