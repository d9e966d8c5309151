"""Access to the bot knowledge base (intents and Q&A entries)."""

from .store import (
    FileKnowledgeStore,
    KnowledgeResourceNotFoundError,
    KnowledgeStore,
    ResourceKind,
)

__all__ = [
    "FileKnowledgeStore",
    "KnowledgeResourceNotFoundError",
    "KnowledgeStore",
    "ResourceKind",
]
