"""
Search filter models for archive search and message trace.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

# Structured archive filters in the order their clauses are emitted.
LIST_FILTERS = (
    "from_address",
    "to_address",
    "subject",
    "body",
    "keyword",
    "attachment_name",
    "attachment_hash",
    "folder_id",
    "message_id",
    "account_id",
)


def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return value


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DateRange(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class SearchFilters(BaseModel):
    """Archive search filters. Field aliases match the provider's parameter names."""

    from_address: list[str] = Field(default_factory=list, alias="FromAddress")
    to_address: list[str] = Field(default_factory=list, alias="ToAddress")
    subject: list[str] = Field(default_factory=list, alias="Subject")
    body: list[str] = Field(default_factory=list, alias="Body")
    keyword: list[str] = Field(default_factory=list, alias="Keyword")
    attachment_name: list[str] = Field(default_factory=list, alias="AttachmentName")
    attachment_hash: list[str] = Field(default_factory=list, alias="AttachmentHash")
    folder_id: list[str] = Field(default_factory=list, alias="FolderId")
    message_id: list[str] = Field(default_factory=list, alias="MessageId")
    account_id: list[str] = Field(default_factory=list, alias="AccountId")
    has_attachment: bool = Field(default=False, alias="HasAttachment")
    no_attachment: bool = Field(default=False, alias="NoAttachment")
    query: Optional[str] = Field(default=None, alias="Query")

    model_config = {"populate_by_name": True, "extra": "forbid"}

    @field_validator(*LIST_FILTERS, mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        return _as_list(value)

    def has_structured_filters(self) -> bool:
        if self.has_attachment or self.no_attachment:
            return True
        return any(getattr(self, name) for name in LIST_FILTERS)


class TraceFilters(BaseModel):
    """Message trace filters, sent as the ``advancedTrackAndTraceOptions`` object."""

    sender: Optional[str] = Field(default=None, alias="From")
    recipient: Optional[str] = Field(default=None, alias="To")
    subject: Optional[str] = Field(default=None, alias="Subject")
    sender_ip: Optional[str] = Field(default=None, alias="SenderIP")
    message_id: Optional[str] = Field(default=None, alias="MessageId")
    route: list[str] = Field(default_factory=list, alias="Route")
    search_reason: Optional[str] = Field(default=None, alias="SearchReason")

    model_config = {"populate_by_name": True, "extra": "forbid"}

    @field_validator("route", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        return _as_list(value)
