"""Shared fixtures: an in-process fake of the Mimecast API behind httpx.MockTransport."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

import httpx
import pytest
import pytest_asyncio

from mimecast_api import AsyncMimecast

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
US_BASE = "https://us-api.services.mimecast.com"

Reply = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


def page(data: Any, next_token: Optional[str] = None, **extra: Any) -> httpx.Response:
    meta: dict[str, Any] = {"status": 200}
    if next_token is not None:
        meta["pagination"] = {"next": next_token, "pageSize": len(data) if isinstance(data, list) else 1}
    return httpx.Response(200, json={"meta": meta, "data": data, "fail": [], **extra})


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class MockMimecast:
    """Answers the token endpoint and replays queued replies per URL path."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, list[Reply]] = {}
        self.token_status = 200
        self.token_payload: dict[str, Any] = {"access_token": "tok1", "expires_in": 3600, "token_type": "Bearer"}

    def add(self, path: str, *replies: Reply) -> None:
        self.routes.setdefault(path, []).extend(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/token":
            return httpx.Response(self.token_status, json=self.token_payload)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"fail": [{"message": f"no route {request.url.path}"}]})
        reply = queue.pop(0)
        if callable(reply):
            return reply(request)
        return reply

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/oauth/token"]

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path != "/oauth/token"]

    def bodies(self, path: Optional[str] = None) -> list[Any]:
        return [
            json.loads(r.content)
            for r in self.api_requests
            if path is None or r.url.path == path
        ]


@pytest.fixture
def server() -> MockMimecast:
    return MockMimecast()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(server: MockMimecast) -> httpx.MockTransport:
    return httpx.MockTransport(server.handler)


@pytest_asyncio.fixture
async def client(transport, clock):
    c = AsyncMimecast(transport=transport, clock=clock)
    yield c
    await c.close()


@pytest_asyncio.fixture
async def connected(client):
    await client.connect("US", "client-id", "client-secret")
    return client
