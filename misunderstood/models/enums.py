"""Enumerations shared by the triage models, schemas and services."""

from __future__ import annotations

from enum import Enum


class FlagReason(str, Enum):
    """Why a message was flagged as misunderstood."""

    AUTO_HOOK = "auto_hook"
    ACTION = "action"
    MANUAL = "manual"
    THUMBS_DOWN = "thumbs_down"


class FlaggedMessageStatus(str, Enum):
    """Lifecycle status of a flagged message."""

    NEW = "new"
    PENDING = "pending"
    APPLIED = "applied"


class ResolutionType(str, Enum):
    """Kind of knowledge-base entry a flagged message is resolved to."""

    QNA = "qna"
    INTENT = "intent"


# Explicit negative feedback from the end user; every other reason is automatic.
EXPLICIT_FEEDBACK_REASON = FlagReason.THUMBS_DOWN

__all__ = [
    "EXPLICIT_FEEDBACK_REASON",
    "FlagReason",
    "FlaggedMessageStatus",
    "ResolutionType",
]
