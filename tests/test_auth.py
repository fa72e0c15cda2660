"""Token lifecycle and region resolution."""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from mimecast_api import AsyncMimecast
from mimecast_api.auth import REGIONS, TokenManager, canonical_region, ensure_valid, resolve_base_uri
from mimecast_api.errors import (
    AuthenticationError,
    NotConnectedError,
    TokenExpiredError,
    UnknownRegionError,
)
from mimecast_api.models.session import Session

from tests.conftest import NOW, US_BASE


class TestRegions:
    def test_every_region_maps_to_a_distinct_uri(self):
        names = ["EU", "US", "DE", "CA", "ZA", "AU", "Offshore"]
        uris = [resolve_base_uri(name) for name in names]
        assert all(uri.startswith("https://") for uri in uris)
        assert len(set(uris)) == len(names)
        assert set(REGIONS) == set(names)

    def test_lookup_is_case_insensitive(self):
        assert canonical_region("offshore") == "Offshore"
        assert resolve_base_uri(" us ") == US_BASE

    @pytest.mark.parametrize("region", ["UK", "", "EU1", None])
    def test_unknown_region(self, region):
        with pytest.raises(UnknownRegionError):
            resolve_base_uri(region)

    def test_custom_base_uri_overrides_region(self):
        assert resolve_base_uri("Custom", "https://api.example.test/") == "https://api.example.test"


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_connect_sets_expiry_and_sends_bearer(self, client, server, clock):
        server.add("/api/v2/account/get-account", httpx.Response(200, json={"data": [{"accountName": "Acme"}]}))

        session = await client.connect("US", "client-id", "client-secret")

        assert session.base_uri == US_BASE
        assert session.region == "US"
        assert session.token_expiry == NOW + timedelta(seconds=3600)
        assert client.is_connected

        token_request = server.token_requests[0]
        assert str(token_request.url) == f"{US_BASE}/oauth/token"
        assert token_request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        form = parse_qs(token_request.content.decode())
        assert form == {
            "grant_type": ["client_credentials"],
            "client_id": ["client-id"],
            "client_secret": ["client-secret"],
        }

        result = await client.execute("GET", "/account/get-account")
        assert result == [{"accountName": "Acme"}]
        assert server.api_requests[0].headers["Authorization"] == "Bearer tok1"

    @pytest.mark.asyncio
    async def test_expiry_with_real_clock(self, transport):
        async with AsyncMimecast(transport=transport) as client:
            before = datetime.now(timezone.utc)
            session = await client.connect("US", "client-id", "client-secret")
        expected = before + timedelta(seconds=3600)
        assert abs((session.token_expiry - expected).total_seconds()) <= 1

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, client, server):
        server.token_status = 401
        server.token_payload = {"error": "invalid_client"}
        with pytest.raises(AuthenticationError) as exc:
            await client.connect("US", "client-id", "wrong")
        assert exc.value.status_code == 401
        assert client.session is None
        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_missing_access_token(self, client, server):
        server.token_payload = {"expires_in": 3600, "token_type": "Bearer"}
        with pytest.raises(AuthenticationError):
            await client.connect("US", "client-id", "client-secret")
        assert client.session is None

    @pytest.mark.asyncio
    async def test_transport_failure_is_authentication_error(self, clock):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with AsyncMimecast(transport=httpx.MockTransport(refuse), clock=clock) as client:
            with pytest.raises(AuthenticationError) as exc:
                await client.connect("EU", "client-id", "client-secret")
        assert isinstance(exc.value.__cause__.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_failed_reconnect_drops_previous_session(self, connected, server):
        server.token_status = 500
        with pytest.raises(AuthenticationError):
            await connected.connect()
        assert connected.session is None

    @pytest.mark.asyncio
    async def test_unknown_region_makes_no_request(self, client, server):
        with pytest.raises(UnknownRegionError):
            await client.connect("Mars", "client-id", "client-secret")
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_custom_base_uri(self, client, server):
        session = await client.connect("Custom", "client-id", "client-secret", base_uri="https://mc.example.test")
        assert session.region == "Custom"
        assert str(server.token_requests[0].url) == "https://mc.example.test/oauth/token"
        assert session.api_base_uri == "https://mc.example.test/api/v2"

    @pytest.mark.asyncio
    async def test_expires_in_defaults_when_absent(self, client, server):
        server.token_payload = {"access_token": "tok2"}
        session = await client.connect("US", "client-id", "client-secret")
        assert session.token_expiry == NOW + timedelta(seconds=3600)
        assert session.token_type == "Bearer"


class TestEnsureValid:
    def _session(self, expiry):
        return Session(region="US", base_uri=US_BASE, access_token="tok1", token_expiry=expiry)

    def test_no_session(self):
        with pytest.raises(NotConnectedError):
            ensure_valid(None, NOW)

    def test_cleared_session(self):
        session = self._session(NOW + timedelta(hours=1))
        TokenManager.clear(session)
        assert session.access_token is None
        assert session.token_expiry is None
        assert session.client_secret is None
        with pytest.raises(NotConnectedError):
            ensure_valid(session, NOW)

    def test_valid_until_expiry(self):
        session = self._session(NOW + timedelta(seconds=1))
        assert ensure_valid(session, NOW) == "tok1"

    def test_expired_at_boundary(self):
        session = self._session(NOW)
        with pytest.raises(TokenExpiredError) as exc:
            ensure_valid(session, NOW)
        assert exc.value.expired_at == NOW
