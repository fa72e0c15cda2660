"""
Cursor pagination over POST list endpoints.

The provider returns ``meta.pagination.next`` on every page except the last;
the cursor is echoed back in ``data[0].pagination.pageToken`` of the next
request. Cursors are single use, so pages are fetched strictly one at a time.
"""

import logging
from contextlib import aclosing
from typing import Any, AsyncGenerator, Optional, Protocol

from mimecast_api.errors import (
    MimecastError,
    OperationCancelledError,
    PageLimitError,
    PaginatedRequestError,
)
from mimecast_api.models.envelope import ResponseEnvelope
from mimecast_api.models.session import Session
from mimecast_api.transport.envelope import ensure_wrapped
from mimecast_api.transport.http import HttpClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 1000


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


def check_cancelled(cancel: Optional[CancelSignal]) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError()


def page_records(data: Any) -> list[Any]:
    """A page's ``data``, flattened one level when it is a list."""
    if data is None:
        return []
    if isinstance(data, list):
        return list(data)
    return [data]


def set_page_token(body: dict[str, Any], token: str) -> None:
    request = body["data"][0]
    pagination = request.get("pagination")
    if not isinstance(pagination, dict):
        pagination = request["pagination"] = {}
    pagination["pageToken"] = token


class Paginator:
    def __init__(self, http: HttpClient, max_pages: Optional[int] = DEFAULT_MAX_PAGES):
        self._http = http
        self._max_pages = max_pages

    async def iter_pages(
        self,
        session: Optional[Session],
        path: str,
        initial_body: Optional[Any] = None,
        cancel: Optional[CancelSignal] = None,
    ) -> AsyncGenerator[list[Any], None]:
        """Yield the records of each page in order until the last page."""
        body = ensure_wrapped(initial_body)
        if not isinstance(body["data"][0], dict):
            raise TypeError("Paginated request body must hold an object in data[0]")

        pages = 0
        while True:
            if pages:
                check_cancelled(cancel)
            if self._max_pages is not None and pages >= self._max_pages:
                raise PageLimitError(self._max_pages)

            envelope: ResponseEnvelope = await self._http.execute(session, "POST", path, body, raw=True)
            pages += 1

            token = envelope.next_page_token
            logger.debug("%s page %d: next=%s", path, pages, bool(token))
            yield page_records(envelope.data)
            if not token:
                return
            set_page_token(body, token)

    async def fetch_all(
        self,
        session: Optional[Session],
        path: str,
        initial_body: Optional[Any] = None,
        first_page_only: bool = False,
        cancel: Optional[CancelSignal] = None,
    ) -> list[Any]:
        """Collect every page of ``path`` into one list, or only the first page.

        Any failure discards what was collected and raises PaginatedRequestError.
        """
        records: list[Any] = []
        try:
            async with aclosing(self.iter_pages(session, path, initial_body, cancel)) as pages:
                async for page in pages:
                    if first_page_only:
                        return page
                    records.extend(page)
        except OperationCancelledError:
            raise
        except MimecastError as e:
            raise PaginatedRequestError(path, e, partial_count=len(records)) from e
        logger.debug("%s: %d records", path, len(records))
        return records
