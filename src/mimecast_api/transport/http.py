"""
REST HTTP client for the Mimecast API.

One call to ``execute`` is one request: no retries, no caching.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Callable, Optional, Union

import httpx

from mimecast_api.auth import ensure_valid, utcnow
from mimecast_api.errors import ApiHttpError, ApiLogicalError, InvalidResponseError, TransportError
from mimecast_api.models.envelope import ResponseEnvelope
from mimecast_api.models.session import Session
from mimecast_api.transport.envelope import parse_envelope

logger = logging.getLogger(__name__)

METHODS = {"GET", "POST", "PUT", "DELETE"}
DEFAULT_TIMEOUT = 30.0
USER_AGENT = "mimecast-api/0.1.0"

QueryParams = Union[Mapping[str, Any], list[tuple[str, Any]]]


class HttpClient:
    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._clock = clock or utcnow
        self._client = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def build_url(session: Session, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{session.api_base_uri}/{path.lstrip('/')}"

    @staticmethod
    def _headers(token: str, extra: Optional[Mapping[str, str]]) -> httpx.Headers:
        headers = httpx.Headers(extra or {})
        headers["Authorization"] = f"Bearer {token}"
        headers["Content-Type"] = "application/json"
        return headers

    @staticmethod
    def _params(params: Optional[QueryParams]) -> Optional[dict[str, Any]]:
        if params is None:
            return None
        items = params.items() if isinstance(params, Mapping) else params
        return {key: value for key, value in items}

    async def execute(
        self,
        session: Optional[Session],
        method: str,
        path: str,
        body: Optional[Any] = None,
        params: Optional[QueryParams] = None,
        headers: Optional[Mapping[str, str]] = None,
        raw: bool = False,
    ) -> Any:
        """Send one request and return ``data`` (or the full envelope when ``raw``)."""
        token = ensure_valid(session, self._clock())
        method = method.upper()
        if method not in METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")

        url = self.build_url(session, path)
        logger.debug("%s %s", method, url)
        try:
            resp = await self._client.request(
                method,
                url,
                params=self._params(params),
                json=body,
                headers=self._headers(token, headers),
            )
        except httpx.TransportError as e:
            raise TransportError(f"{method} {url} failed: {e}", cause=e) from e

        logger.debug("%s %s -> %s", method, url, resp.status_code)
        if not resp.is_success:
            raise ApiHttpError(resp.status_code, resp.text)

        payload, envelope = self._parse(resp)
        if envelope.failed:
            raise ApiLogicalError(envelope.fail or [])
        if raw:
            return envelope
        if envelope.has_data:
            return envelope.data
        return payload

    @staticmethod
    def _parse(resp: httpx.Response) -> tuple[Any, ResponseEnvelope]:
        if not resp.content:
            return None, ResponseEnvelope()
        try:
            payload = resp.json()
        except ValueError as e:
            raise InvalidResponseError(
                f"Expected JSON from {resp.request.url}, got {resp.headers.get('content-type', 'unknown')}",
                body=resp.text,
            ) from e
        return payload, parse_envelope(payload)

    async def post_form(self, url: str, data: dict[str, str]) -> httpx.Response:
        """POST a form-encoded body without authentication (token endpoint)."""
        try:
            return await self._client.post(
                url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.TransportError as e:
            raise TransportError(f"POST {url} failed: {e}", cause=e) from e

    async def close(self) -> None:
        await self._client.aclose()
