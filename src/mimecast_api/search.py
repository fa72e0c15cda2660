"""
Archive search and message trace.

Archive search speaks the provider's XML query document: structured filters
become a boolean expression placed in ``<muse><text>``, one parenthesised
group per field (values OR'd), groups AND'd, closed by the date clause.
Message trace takes a JSON filter object and pages with cursor tokens.

Both endpoints run their own bounded paging loop and flatten each raw record
into a MessageRecord.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar, Union

from pydantic import ValidationError

from mimecast_api.errors import (
    InvalidFilterError,
    MimecastError,
    OperationCancelledError,
    PageLimitError,
    PaginatedRequestError,
)
from mimecast_api.models.message import (
    DeliveryOutcome,
    MessageRecord,
    MessageSender,
    PolicyMatch,
    ProcessingEvent,
)
from mimecast_api.models.search import LIST_FILTERS, DateRange, SearchFilters, TraceFilters, as_utc
from mimecast_api.models.session import Session
from mimecast_api.pagination import DEFAULT_MAX_PAGES, CancelSignal, check_cancelled, page_records
from mimecast_api.transport.envelope import wrap_body
from mimecast_api.transport.http import HttpClient

logger = logging.getLogger(__name__)

ARCHIVE_SEARCH_PATH = "/archive/search"
MESSAGE_TRACE_PATH = "/message-finder/search"
DEFAULT_PAGE_SIZE = 100

FIELD_PREFIXES = {
    "from_address": "from",
    "to_address": "to",
    "subject": "subject",
    "body": "body",
    "keyword": None,  # free text, no field scope
    "attachment_name": "attachmentname",
    "attachment_hash": "attachmenthash",
    "folder_id": "folderid",
    "message_id": "messageid",
    "account_id": "accountid",
}

RETURN_FIELDS = (
    "attachmentcount",
    "status",
    "subject",
    "size",
    "receiveddate",
    "displayfrom",
    "displayfromaddress",
    "id",
    "displayto",
    "displaytoaddresslist",
    "smash",
)

DateRangeLike = Union[DateRange, tuple[datetime, datetime]]
FiltersLike = Union[SearchFilters, dict[str, Any], None]


def format_timestamp(value: datetime) -> str:
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%S+0000")


def coerce_date_range(value: Optional[DateRangeLike]) -> DateRange:
    if value is None:
        raise InvalidFilterError("A date range is required")
    if not isinstance(value, DateRange):
        start, end = value
        value = DateRange(start=start, end=end)
    if value.end <= value.start:
        raise InvalidFilterError("Date range end must be after its start")
    return value


FilterModel = TypeVar("FilterModel", SearchFilters, TraceFilters)


def coerce_filters(model: type[FilterModel], value: Any) -> FilterModel:
    """Validate a filter mapping; unknown keys and bad values are InvalidFilterError."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value or {})
    except ValidationError as e:
        raise InvalidFilterError(f"Invalid {model.__name__}: {e}") from e


def validate_filters(filters: SearchFilters) -> None:
    if filters.has_attachment and filters.no_attachment:
        raise InvalidFilterError("has_attachment and no_attachment cannot both be set")
    if filters.query is not None and filters.has_structured_filters():
        raise InvalidFilterError("A raw query cannot be combined with structured filters")


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def build_search_expression(filters: SearchFilters, date_range: DateRange) -> str:
    """Build the boolean query text for ``filters`` over ``date_range``."""
    validate_filters(filters)
    if filters.query is not None:
        return filters.query

    groups = []
    for name in LIST_FILTERS:
        values = [v for v in getattr(filters, name) if v]
        if not values:
            continue
        prefix = FIELD_PREFIXES[name]
        terms = [_quote(v) if prefix is None else f"{prefix}:{_quote(v)}" for v in values]
        groups.append("(" + " OR ".join(terms) + ")")
    if filters.has_attachment:
        groups.append("(has:attachment)")
    if filters.no_attachment:
        groups.append("(NOT has:attachment)")
    groups.append(
        f"(date:[{format_timestamp(date_range.start)} TO {format_timestamp(date_range.end)}])"
    )
    return " AND ".join(groups)


def split_and_groups(expression: str) -> list[str]:
    """Split ``expression`` on AND operators that sit outside parentheses and quotes."""
    groups: list[str] = []
    depth = 0
    in_quote = False
    start = i = 0
    while i < len(expression):
        ch = expression[i]
        if in_quote:
            if ch == "\\":
                i += 1
            elif ch == '"':
                in_quote = False
        elif ch == '"':
            in_quote = True
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif depth == 0 and expression.startswith(" AND ", i):
            groups.append(expression[start:i].strip())
            i += 5
            start = i
            continue
        i += 1
    tail = expression[start:].strip()
    if tail:
        groups.append(tail)
    return groups


def build_archive_query(
    expression: str,
    date_range: DateRange,
    page_size: int = DEFAULT_PAGE_SIZE,
    start_row: int = 0,
    oldest_first: bool = False,
) -> str:
    """Wrap ``expression`` in the XML query document the archive endpoint expects."""
    root = ET.Element("xmlquery", {"trace": "iql,muse"})
    meta = ET.SubElement(
        root,
        "metadata",
        {
            "query-type": "emailarchive",
            "archive": "true",
            "active": "false",
            "page-size": str(page_size),
            "startrow": str(start_row),
        },
    )
    ET.SubElement(meta, "smartfolders")
    fields = ET.SubElement(meta, "return-fields")
    for name in RETURN_FIELDS:
        ET.SubElement(fields, "return-field").text = name
    if oldest_first:
        ET.SubElement(meta, "sort", {"field": "receiveddate", "order": "ascending"})

    muse = ET.SubElement(root, "muse")
    ET.SubElement(muse, "text").text = expression
    ET.SubElement(
        muse,
        "date",
        {
            "select": "between",
            "from": format_timestamp(date_range.start),
            "to": format_timestamp(date_range.end),
        },
    )
    ET.SubElement(muse, "docs", {"select": "optional"})
    ET.SubElement(muse, "route")
    return '<?xml version="1.0"?>' + ET.tostring(root, encoding="unicode")


def build_trace_request(filters: TraceFilters, date_range: DateRange) -> dict[str, Any]:
    request: dict[str, Any] = {
        "start": format_timestamp(date_range.start),
        "end": format_timestamp(date_range.end),
    }
    if filters.search_reason:
        request["searchReason"] = filters.search_reason
    if filters.message_id:
        request["messageId"] = filters.message_id

    options: dict[str, Any] = {}
    for key, value in (
        ("from", filters.sender),
        ("to", filters.recipient),
        ("subject", filters.subject),
        ("senderIP", filters.sender_ip),
    ):
        if value:
            options[key] = value
    if filters.route:
        options["route"] = list(filters.route)
    if options:
        request["advancedTrackAndTraceOptions"] = options
    return request


# Flattening

def _int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _as_dicts(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


def _events(value: Any) -> list[ProcessingEvent]:
    return [
        ProcessingEvent(
            timestamp=_str(item.get("eventTime") or item.get("timestamp")),
            type=_str(item.get("eventType") or item.get("type") or item.get("event")),
            detail=_str(item.get("info") or item.get("detail") or item.get("message")),
        )
        for item in _as_dicts(value)
    ]


def _policies(value: Any) -> list[PolicyMatch]:
    return [
        PolicyMatch(
            name=_str(item.get("policyName") or item.get("name")),
            type=_str(item.get("policyType") or item.get("type")),
            action=_str(item.get("action") or item.get("policyAction")),
        )
        for item in _as_dicts(value)
    ]


def _address(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return _str(value.get("emailAddress") or value.get("address"))
    return _str(value) if value else None


def flatten_archive_record(raw: dict[str, Any]) -> MessageRecord:
    status = _str(raw.get("status"))
    recipients = [_address(r) for r in raw.get("displaytoaddresslist") or []]
    if not recipients and raw.get("displayto"):
        recipients = [part.strip() for part in str(raw["displayto"]).replace(";", ",").split(",")]
    return MessageRecord(
        id=str(raw.get("id") or ""),
        subject=_str(raw.get("subject")),
        sender=MessageSender(
            name=_str(raw.get("displayfrom")),
            address=_str(raw.get("displayfromaddress") or raw.get("fromaddress")),
        ),
        deliveries=tuple(DeliveryOutcome(address=addr, status=status) for addr in recipients if addr),
        sent=_str(raw.get("sentdate") or raw.get("sent")),
        received=_str(raw.get("receiveddate") or raw.get("received")),
        route=_str(raw.get("route")),
        status=status,
        size=_int(raw.get("size")),
        attachment_count=_int(raw.get("attachmentcount")),
    )


def flatten_trace_record(raw: dict[str, Any]) -> MessageRecord:
    """Flatten a tracked email, one delivery outcome per recipient in map order."""
    status = _str(raw.get("status"))
    from_hdr = raw.get("fromHdr") or {}
    from_env = raw.get("fromEnv") or {}

    deliveries: list[DeliveryOutcome] = []
    events = _events(raw.get("processingEvents"))
    policies = _policies(raw.get("policyInfo"))

    delivered = raw.get("deliveredMessage")
    if isinstance(delivered, dict) and delivered:
        for address, info in delivered.items():
            info = info if isinstance(info, dict) else {}
            meta = info.get("deliveryMetaInfo") or {}
            deliveries.append(
                DeliveryOutcome(
                    address=str(address),
                    status=_str(meta.get("deliveryEvent") or info.get("status") or status),
                    detail=_str(meta.get("transmissionInfo") or info.get("detail")),
                )
            )
            events.extend(_events(info.get("processingEvents")))
            policies.extend(_policies(info.get("policyInfo")))
    else:
        for rcpt in raw.get("to") or []:
            address = _address(rcpt)
            if address:
                deliveries.append(DeliveryOutcome(address=address, status=status))

    attachments = raw.get("attachments")
    return MessageRecord(
        id=str(raw.get("id") or ""),
        subject=_str(raw.get("subject")),
        sender=MessageSender(
            name=_str(from_hdr.get("displayableName")),
            address=_str(from_hdr.get("emailAddress") or from_env.get("emailAddress")),
            envelope_address=_str(from_env.get("emailAddress")),
        ),
        deliveries=tuple(deliveries),
        sent=_str(raw.get("sent")),
        received=_str(raw.get("received")),
        route=_str(raw.get("route")),
        status=status,
        size=_int(raw.get("size")),
        attachment_count=len(attachments) if isinstance(attachments, list) else None,
        processing_events=tuple(events),
        policy_matches=tuple(policies),
    )


def _extract(data: Any, key: str) -> list[dict[str, Any]]:
    """Raw records of one page; the provider nests them under ``key``."""
    items: list[dict[str, Any]] = []
    for element in page_records(data):
        if isinstance(element, dict) and key in element:
            items.extend(_as_dicts(element.get(key)))
        elif isinstance(element, dict):
            items.append(element)
    return items


BodyBuilder = Callable[[int, int, Optional[str]], dict[str, Any]]


class _BoundedSearch:
    """Paging loop shared by archive search and message trace.

    Both endpoints page by cursor: ``meta.pagination.next`` is echoed back in
    ``data[0].pagination.pageToken`` and only its absence (or an empty page)
    ends the search. ``skip`` is either sent as a start row with the first
    request or, where the endpoint has no offset, dropped client-side.
    """

    path: str
    records_key: str
    skip_by_offset: bool

    def __init__(self, http: HttpClient, max_pages: Optional[int] = DEFAULT_MAX_PAGES):
        self._http = http
        self._max_pages = max_pages

    def _flatten(self, raw: dict[str, Any]) -> MessageRecord:
        raise NotImplementedError

    async def _collect(
        self,
        session: Optional[Session],
        build_body: BodyBuilder,
        page_size: int,
        limit: Optional[int],
        skip: int,
        fetch_all: bool,
        cancel: Optional[CancelSignal],
    ) -> list[MessageRecord]:
        if page_size < 1:
            raise InvalidFilterError("page_size must be at least 1")
        if skip < 0 or (limit is not None and limit < 0):
            raise InvalidFilterError("limit and skip cannot be negative")

        if limit is not None:
            if not fetch_all:
                logger.debug("limit=%d given, fetch_all flag ignored", limit)
            target: Optional[int] = limit
        else:
            target = None if fetch_all else page_size

        records: list[MessageRecord] = []
        start_row = skip if self.skip_by_offset else 0
        to_skip = 0 if self.skip_by_offset else skip
        token: Optional[str] = None
        pages = 0
        try:
            while target is None or len(records) < target:
                if pages:
                    check_cancelled(cancel)
                if self._max_pages is not None and pages >= self._max_pages:
                    raise PageLimitError(self._max_pages)

                remaining = page_size if target is None else target - len(records)
                request_size = min(page_size, remaining + to_skip)
                # After the first page the cursor carries the position.
                body = build_body(request_size, start_row if token is None else 0, token)
                envelope = await self._http.execute(session, "POST", self.path, body, raw=True)
                pages += 1

                items = _extract(envelope.data, self.records_key)
                received = len(items)
                if to_skip:
                    dropped = min(to_skip, received)
                    items = items[dropped:]
                    to_skip -= dropped
                for item in items:
                    if target is not None and len(records) >= target:
                        break
                    records.append(self._flatten(item))

                token = envelope.next_page_token
                logger.debug("%s page %d: %d records so far", self.path, pages, len(records))
                if not received or token is None:
                    break
        except OperationCancelledError:
            raise
        except MimecastError as e:
            raise PaginatedRequestError(self.path, e, partial_count=len(records)) from e
        return records


def _pagination(token: Optional[str], page_size: Optional[int] = None) -> dict[str, Any]:
    pagination: dict[str, Any] = {}
    if page_size is not None:
        pagination["pageSize"] = page_size
    if token:
        pagination["pageToken"] = token
    return pagination


class ArchiveSearch(_BoundedSearch):
    path = ARCHIVE_SEARCH_PATH
    records_key = "items"
    skip_by_offset = True

    def _flatten(self, raw: dict[str, Any]) -> MessageRecord:
        return flatten_archive_record(raw)

    async def search(
        self,
        session: Optional[Session],
        filters: FiltersLike = None,
        date_range: Optional[DateRangeLike] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        limit: Optional[int] = None,
        skip: int = 0,
        fetch_all: bool = True,
        oldest_first: bool = False,
        cancel: Optional[CancelSignal] = None,
    ) -> list[MessageRecord]:
        """Search the archive. Invalid filters fail before any request is sent."""
        filters = coerce_filters(SearchFilters, filters)
        window = coerce_date_range(date_range)
        expression = build_search_expression(filters, window)
        logger.debug("Archive search: %s", expression)

        def build_body(size: int, start_row: int, token: Optional[str]) -> dict[str, Any]:
            request: dict[str, Any] = {
                "admin": True,
                "query": build_archive_query(expression, window, size, start_row, oldest_first),
            }
            if token:
                request["pagination"] = _pagination(token)
            return wrap_body(request)

        return await self._collect(session, build_body, page_size, limit, skip, fetch_all, cancel)


class MessageTrace(_BoundedSearch):
    path = MESSAGE_TRACE_PATH
    records_key = "trackedEmails"
    skip_by_offset = False

    def _flatten(self, raw: dict[str, Any]) -> MessageRecord:
        return flatten_trace_record(raw)

    async def trace(
        self,
        session: Optional[Session],
        filters: Union[TraceFilters, dict[str, Any], None] = None,
        date_range: Optional[DateRangeLike] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        limit: Optional[int] = None,
        skip: int = 0,
        fetch_all: bool = True,
        cancel: Optional[CancelSignal] = None,
    ) -> list[MessageRecord]:
        filters = coerce_filters(TraceFilters, filters)
        request = build_trace_request(filters, coerce_date_range(date_range))

        def build_body(size: int, _start_row: int, token: Optional[str]) -> dict[str, Any]:
            return wrap_body({**request, "pagination": _pagination(token, size)})

        return await self._collect(session, build_body, page_size, limit, skip, fetch_all, cancel)
