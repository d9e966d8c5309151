"""Pydantic schemas for the triage APIs and export documents.

Attributes are snake_case; serialized documents use camelCase keys
(``botId``, ``resolutionType`` ...) so exports stay compatible with files
produced by earlier versions of the bot platform.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..models.enums import FlaggedMessageStatus, FlagReason, ResolutionType


def parse_resolution_params(value: Any) -> Any:
    """Return ``value`` as structured data.

    Text holding a JSON object or array is decoded; any other value, plain
    strings included, is returned untouched.
    """

    if not value or not isinstance(value, (str, bytes)):
        return value
    try:
        decoded = json.loads(value)
    except ValueError:
        return value
    return decoded if isinstance(decoded, (dict, list)) else value


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ResolutionData(CamelModel):
    resolution_type: ResolutionType | None = None
    resolution: str | None = None
    resolution_params: Any | None = None

    @field_validator("resolution_params", mode="before")
    def _decode_params(cls, value: Any) -> Any:
        return parse_resolution_params(value)


class FlaggedEventData(CamelModel):
    """A flagged message without store-assigned id and timestamps."""

    event_id: str | None = None
    bot_id: str
    language: str
    preview: str
    reason: FlagReason | None = None
    status: FlaggedMessageStatus = FlaggedMessageStatus.NEW
    resolution_type: ResolutionType | None = None
    resolution: str | None = None
    resolution_params: Any | None = None

    @field_validator("resolution_params", mode="before")
    def _decode_params(cls, value: Any) -> Any:
        return parse_resolution_params(value)


class FlaggedEventCreate(CamelModel):
    """Payload of the registration endpoint; the bot comes from the URL."""

    event_id: str | None = None
    language: str
    preview: str
    reason: FlagReason | None = None


class FlaggedEventRead(FlaggedEventData):
    id: int
    created_at: datetime
    updated_at: datetime


class ContextMessage(CamelModel):
    direction: str | None = None
    preview: str
    payload_message: Any | None = None
    is_current: bool


class FlaggedEventDetail(FlaggedEventRead):
    context: list[ContextMessage] = Field(default_factory=list)
    nlu_contexts: list[str] = Field(default_factory=list)


class FilteringOptions(CamelModel):
    start_date: datetime | None = None
    end_date: datetime | None = None
    reason: FlagReason | None = None


class StatusUpdateRequest(CamelModel):
    ids: list[int]
    status: FlaggedMessageStatus
    resolution_data: ResolutionData | None = None


class ApplyResult(BaseModel):
    applied: int


class ImportResult(BaseModel):
    imported: int


__all__ = [
    "ApplyResult",
    "ContextMessage",
    "FilteringOptions",
    "FlaggedEventCreate",
    "FlaggedEventData",
    "FlaggedEventDetail",
    "FlaggedEventRead",
    "ImportResult",
    "ResolutionData",
    "StatusUpdateRequest",
    "parse_resolution_params",
]
