"""
OAuth2 client-credentials flow and token lifetime tracking.

Tokens are never refreshed behind the caller's back: once a token expires
every request fails with TokenExpiredError until the session is reconnected.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import SecretStr

from mimecast_api.errors import (
    AuthenticationError,
    MimecastError,
    NotConnectedError,
    TokenExpiredError,
    UnknownRegionError,
)
from mimecast_api.models.session import Session

if TYPE_CHECKING:
    from mimecast_api.transport.http import HttpClient

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/token"
DEFAULT_EXPIRES_IN = 3600
CUSTOM_REGION = "Custom"

REGIONS: dict[str, str] = {
    "EU": "https://eu-api.services.mimecast.com",
    "US": "https://us-api.services.mimecast.com",
    "DE": "https://de-api.services.mimecast.com",
    "CA": "https://ca-api.services.mimecast.com",
    "ZA": "https://za-api.services.mimecast.com",
    "AU": "https://au-api.services.mimecast.com",
    "Offshore": "https://off-api.services.mimecast.com",
}

_REGION_LOOKUP = {name.upper(): name for name in REGIONS}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_region(region: str) -> str:
    """Return the table spelling of ``region`` (case-insensitive)."""
    try:
        return _REGION_LOOKUP[region.strip().upper()]
    except (KeyError, AttributeError):
        raise UnknownRegionError(str(region)) from None


def resolve_base_uri(region: str, base_uri: Optional[str] = None) -> str:
    if base_uri:
        return base_uri.rstrip("/")
    return REGIONS[canonical_region(region)]


def ensure_valid(session: Optional[Session], now: Optional[datetime] = None) -> str:
    """Return the bearer token for ``session`` or raise. Makes no network call."""
    if session is None or not session.access_token:
        raise NotConnectedError()
    if session.token_expiry is not None and (now or utcnow()) >= session.token_expiry:
        raise TokenExpiredError(session.token_expiry)
    return session.access_token


class TokenManager:
    def __init__(self, http: HttpClient, clock: Optional[Callable[[], datetime]] = None):
        self._http = http
        self._clock = clock or utcnow

    async def authenticate(
        self,
        region: str,
        client_id: str,
        client_secret: str,
        base_uri: Optional[str] = None,
    ) -> Session:
        """Exchange client credentials for a bearer token and build a Session."""
        label = (region or CUSTOM_REGION) if base_uri else canonical_region(region)
        root = resolve_base_uri(label, base_uri)

        if not client_id or not client_secret:
            raise AuthenticationError("client_id and client_secret are required")

        logger.debug("Requesting access token from %s (region %s)", root, label)
        try:
            resp = await self._http.post_form(
                f"{root}{TOKEN_PATH}",
                {
                    "grant_type": "client_credentials",
                    "client_id": client_id,
                    "client_secret": client_secret,
                },
            )
        except MimecastError as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        if resp.status_code >= 400:
            raise AuthenticationError(
                f"Token request rejected: HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise AuthenticationError("Token endpoint returned a non-JSON body", resp.status_code) from e
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthenticationError("Token endpoint response has no access_token", resp.status_code)

        try:
            expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError) as e:
            raise AuthenticationError(f"Invalid expires_in: {payload.get('expires_in')!r}") from e

        now = self._clock()
        session = Session(
            region=label,
            base_uri=root,
            client_id=client_id,
            client_secret=SecretStr(client_secret),
            access_token=payload["access_token"],
            token_type=payload.get("token_type") or "Bearer",
            token_expiry=now + timedelta(seconds=expires_in),
            connected_at=now,
        )
        logger.info("Connected to %s, token valid for %ss", root, expires_in)
        return session

    def ensure_valid(self, session: Optional[Session]) -> str:
        return ensure_valid(session, self._clock())

    @staticmethod
    def clear(session: Optional[Session]) -> None:
        if session is None:
            return
        session.access_token = None
        session.token_expiry = None
        session.client_id = None
        session.client_secret = None
