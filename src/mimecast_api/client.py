"""
Mimecast / AsyncMimecast: main SDK clients.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from mimecast_api.auth import TokenManager, utcnow
from mimecast_api.errors import MimecastError, PaginatedRequestError, TokenExpiredError
from mimecast_api.models.message import MessageRecord
from mimecast_api.models.session import Session
from mimecast_api.pagination import DEFAULT_MAX_PAGES, CancelSignal, Paginator
from mimecast_api.search import ArchiveSearch, MessageTrace
from mimecast_api.transport.http import DEFAULT_TIMEOUT, HttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncMimecast:
    """Async Mimecast API client (primary)."""

    def __init__(
        self,
        region: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_uri: Optional[str] = None,
        session: Optional[Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_pages: Optional[int] = DEFAULT_MAX_PAGES,
        auto_refresh: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._region = region
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_uri = base_uri
        self._auto_refresh = auto_refresh
        self._clock = clock or utcnow

        self.http = HttpClient(timeout=timeout, transport=transport, clock=self._clock)
        self.tokens = TokenManager(self.http, clock=self._clock)
        self.paginator = Paginator(self.http, max_pages=max_pages)
        self.archive = ArchiveSearch(self.http, max_pages=max_pages)
        self.message_trace = MessageTrace(self.http, max_pages=max_pages)
        self.session: Optional[Session] = session

    @property
    def is_connected(self) -> bool:
        return self.session is not None and self.session.is_connected

    async def connect(
        self,
        region: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_uri: Optional[str] = None,
    ) -> Session:
        """Authenticate and replace the current session.

        On failure the previous session is cleared, never left half-updated.
        """
        region = region or self._region or ""
        client_id = client_id or self._client_id
        client_secret = client_secret or self._client_secret
        base_uri = base_uri or self._base_uri
        try:
            session = await self.tokens.authenticate(region, client_id or "", client_secret or "", base_uri)
        except MimecastError:
            self._drop_session()
            raise
        self._region, self._client_id, self._client_secret, self._base_uri = (
            region, client_id, client_secret, base_uri,
        )
        self.session = session
        return session

    def disconnect(self) -> None:
        self._drop_session()
        self._client_secret = None

    def current_config(self) -> dict[str, Any]:
        if self.session is None:
            return {"base_uri": None, "region": None, "token_expiry": None}
        return self.session.config()

    async def execute(
        self,
        method: str,
        path: str,
        body: Optional[Any] = None,
        params: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
        raw: bool = False,
    ) -> Any:
        return await self._call(
            lambda: self.http.execute(self.session, method, path, body, params, headers, raw)
        )

    async def fetch_all(
        self,
        path: str,
        initial_body: Optional[Any] = None,
        first_page_only: bool = False,
        cancel: Optional[CancelSignal] = None,
    ) -> list[Any]:
        return await self._call(
            lambda: self.paginator.fetch_all(self.session, path, initial_body, first_page_only, cancel)
        )

    async def search(self, filters: Any = None, date_range: Any = None, **options: Any) -> list[MessageRecord]:
        """Archive search. See ArchiveSearch.search for options."""
        return await self._call(lambda: self.archive.search(self.session, filters, date_range, **options))

    async def trace(self, filters: Any = None, date_range: Any = None, **options: Any) -> list[MessageRecord]:
        """Message trace. See MessageTrace.trace for options."""
        return await self._call(lambda: self.message_trace.trace(self.session, filters, date_range, **options))

    async def close(self) -> None:
        await self.http.close()

    async def __aenter__(self) -> "AsyncMimecast":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _call(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except MimecastError as e:
            if not self._should_refresh(e):
                raise
        logger.info("Access token expired, reconnecting")
        await self.connect()
        return await operation()

    def _should_refresh(self, error: MimecastError) -> bool:
        if not self._auto_refresh or not self._client_secret:
            return False
        if isinstance(error, PaginatedRequestError):
            error = error.cause
        return isinstance(error, TokenExpiredError)

    def _drop_session(self) -> None:
        TokenManager.clear(self.session)
        self.session = None


class Mimecast:
    """Sync wrapper around AsyncMimecast. Runs the event loop internally."""

    def __init__(self, **kwargs: Any):
        self._async = AsyncMimecast(**kwargs)
        self._loop = asyncio.new_event_loop()

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def session(self) -> Optional[Session]:
        return self._async.session

    @property
    def is_connected(self) -> bool:
        return self._async.is_connected

    def connect(self, *args: Any, **kwargs: Any) -> Session:
        return self._run(self._async.connect(*args, **kwargs))

    def disconnect(self) -> None:
        self._async.disconnect()

    def current_config(self) -> dict[str, Any]:
        return self._async.current_config()

    def execute(self, method: str, path: str, body: Optional[Any] = None, **kwargs: Any) -> Any:
        return self._run(self._async.execute(method, path, body, **kwargs))

    def fetch_all(self, path: str, initial_body: Optional[Any] = None, **kwargs: Any) -> list[Any]:
        return self._run(self._async.fetch_all(path, initial_body, **kwargs))

    def search(self, filters: Any = None, date_range: Any = None, **options: Any) -> list[MessageRecord]:
        return self._run(self._async.search(filters, date_range, **options))

    def trace(self, filters: Any = None, date_range: Any = None, **options: Any) -> list[MessageRecord]:
        return self._run(self._async.trace(filters, date_range, **options))

    def close(self) -> None:
        self._run(self._async.close())
        self._loop.close()

    def __enter__(self) -> "Mimecast":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
