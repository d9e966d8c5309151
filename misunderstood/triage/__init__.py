"""Flagged-message triage services and schemas."""

from . import schemas
from .reconciliation import MissingResolutionTargetsError
from .service import MisunderstoodService

__all__ = [
    "MissingResolutionTargetsError",
    "MisunderstoodService",
    "schemas",
]
