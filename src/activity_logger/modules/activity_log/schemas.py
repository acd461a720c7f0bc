"""Pydantic schemas for activity log operations."""

from datetime import date, datetime, time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from activity_logger.core.constants import USERNAME_MAX_LENGTH


# ============================================================
# Log Entries
# ============================================================


class LogEntryRead(BaseModel):
    """Immutable snapshot of a stored log entry."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    username: str
    action: str
    log_time: datetime


# ============================================================
# Search Filters
# ============================================================


class ActionCategory(StrEnum):
    """Fixed vocabulary for the action filter."""

    CREATED = "created"
    UPDATED = "updated"
    TRASHED = "trashed"
    DELETED = "deleted"


class SearchFilters(BaseModel):
    """Optional, independently specifiable search criteria.

    Blank strings count as "not supplied". The date range only applies
    when both bounds are present.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    text: str | None = None
    username: str | None = Field(default=None, max_length=USERNAME_MAX_LENGTH)
    action_category: ActionCategory | None = None
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_as_missing(cls, v: Any) -> Any:
        """Treat empty and whitespace-only values as absent."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def date_range(self) -> tuple[datetime, datetime] | None:
        """Inclusive day bounds, from 00:00:00 on the start day to 23:59:59 on the end day."""
        if self.start_date is None or self.end_date is None:
            return None
        return (
            datetime.combine(self.start_date, time(0, 0, 0)),
            datetime.combine(self.end_date, time(23, 59, 59)),
        )


class SearchResponse(BaseModel):
    """Search page payload: matching entries plus the username filter options."""

    logs: list[LogEntryRead]
    usernames: list[str]


# ============================================================
# Recorder Options
# ============================================================


class RecorderOptions(BaseModel):
    """Recorder settings held in the external key-value store."""

    include_cron: bool = False
    include_transients: bool = True
    excluded_option_prefixes: list[str] = Field(default_factory=list)

    @field_validator("excluded_option_prefixes", mode="before")
    @classmethod
    def split_prefixes(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list.

        Entries are trimmed; empty entries are dropped so that a blank
        setting excludes nothing.
        """
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list | tuple):
            return [str(item).strip() for item in v if str(item).strip()]
        return v


# ============================================================
# Deletion
# ============================================================


class BulkDeleteRequest(BaseModel):
    """Bulk delete body. Ids arrive unsanitized from a form."""

    log_ids: list[Any] = Field(default_factory=list)
    token: str


class BulkDeleteResponse(BaseModel):
    deleted_ids: list[int]


class ConfirmationResponse(BaseModel):
    """Token that must accompany the matching delete request."""

    scope: str
    token: str


# ============================================================
# Event Ingestion
# ============================================================


class RecordResponse(BaseModel):
    """Id of the stored entry, or null when the event was not logged."""

    id: int | None = None
