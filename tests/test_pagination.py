"""Cursor pagination driver."""

import copy
import threading

import httpx
import pytest

from mimecast_api import AsyncMimecast
from mimecast_api.errors import (
    ApiHttpError,
    ApiLogicalError,
    NotConnectedError,
    OperationCancelledError,
    PageLimitError,
    PaginatedRequestError,
)
from mimecast_api.pagination import page_records, set_page_token
from mimecast_api.transport.envelope import ensure_wrapped

from tests.conftest import page

PATH = "/user/get-internal-users"
FULL = "/api/v2/user/get-internal-users"


def users(start, count):
    return [{"emailAddress": f"user{i}@example.com"} for i in range(start, start + count)]


def serve_pages(server, n, per_page=2):
    for i in range(1, n + 1):
        token = f"tok_{i}" if i < n else None
        server.add(FULL, page(users((i - 1) * per_page, per_page), next_token=token))


@pytest.mark.asyncio
async def test_collects_all_pages_in_order(connected, server):
    serve_pages(server, 3)
    records = await connected.fetch_all(PATH, {"data": [{"domain": "example.com"}]})

    assert records == users(0, 6)
    assert len(server.api_requests) == 3


@pytest.mark.asyncio
async def test_echoes_cursor_into_next_request(connected, server):
    serve_pages(server, 3)
    await connected.fetch_all(PATH, {"data": [{"domain": "example.com"}]})

    bodies = server.bodies(FULL)
    assert "pagination" not in bodies[0]["data"][0]
    assert bodies[1]["data"][0]["pagination"]["pageToken"] == "tok_1"
    assert bodies[2]["data"][0]["pagination"]["pageToken"] == "tok_2"
    assert all(b["data"][0]["domain"] == "example.com" for b in bodies)


@pytest.mark.asyncio
async def test_first_page_only(connected, server):
    serve_pages(server, 3)
    records = await connected.fetch_all(PATH, first_page_only=True)

    assert records == users(0, 2)
    assert len(server.api_requests) == 1


@pytest.mark.asyncio
async def test_does_not_mutate_initial_body(connected, server):
    serve_pages(server, 2)
    initial = {"data": [{"domain": "example.com", "pagination": {"pageSize": 2}}]}
    snapshot = copy.deepcopy(initial)

    await connected.fetch_all(PATH, initial)

    assert initial == snapshot
    assert server.bodies(FULL)[1]["data"][0]["pagination"] == {"pageSize": 2, "pageToken": "tok_1"}


@pytest.mark.asyncio
async def test_bare_payload_is_wrapped(connected, server):
    serve_pages(server, 1)
    payload = {"domain": "example.com"}
    await connected.fetch_all(PATH, payload)
    assert server.bodies(FULL)[0] == {"data": [{"domain": "example.com"}]}
    assert payload == {"domain": "example.com"}


@pytest.mark.asyncio
async def test_failure_discards_partial_results(connected, server):
    server.add(FULL, page(users(0, 2), next_token="tok_1"), httpx.Response(500, text="internal"))
    with pytest.raises(PaginatedRequestError) as exc:
        await connected.fetch_all(PATH)

    assert exc.value.path == PATH
    assert exc.value.partial_count == 2
    assert isinstance(exc.value.cause, ApiHttpError)
    assert exc.value.cause.status_code == 500


@pytest.mark.asyncio
async def test_success_false_page_fails(connected, server):
    server.add(FULL, httpx.Response(200, json={"success": False, "data": [], "fail": [{"message": "denied"}]}))
    with pytest.raises(PaginatedRequestError) as exc:
        await connected.fetch_all(PATH)
    assert isinstance(exc.value.cause, ApiLogicalError)


@pytest.mark.asyncio
async def test_token_errors_are_wrapped(client):
    with pytest.raises(PaginatedRequestError) as exc:
        await client.fetch_all(PATH)
    assert isinstance(exc.value.cause, NotConnectedError)


@pytest.mark.asyncio
async def test_object_data_counts_as_one_record(connected, server):
    server.add(FULL, page({"emailAddress": "solo@example.com"}))
    assert await connected.fetch_all(PATH) == [{"emailAddress": "solo@example.com"}]


@pytest.mark.asyncio
async def test_page_ceiling(transport, clock, server):
    def endless(request):
        return page(users(0, 1), next_token="again")

    server.add(FULL, *[endless] * 5)
    async with AsyncMimecast(transport=transport, clock=clock, max_pages=3) as client:
        await client.connect("US", "client-id", "client-secret")
        with pytest.raises(PaginatedRequestError) as exc:
            await client.fetch_all(PATH)
    assert isinstance(exc.value.cause, PageLimitError)
    assert exc.value.cause.max_pages == 3
    assert len(server.api_requests) == 3


@pytest.mark.asyncio
async def test_cancel_between_pages(connected, server):
    cancel = threading.Event()

    def first(request):
        cancel.set()
        return page(users(0, 2), next_token="tok_1")

    server.add(FULL, first, page(users(2, 2)))
    with pytest.raises(OperationCancelledError):
        await connected.fetch_all(PATH, cancel=cancel)
    assert len(server.api_requests) == 1


def test_ensure_wrapped_copies():
    body = {"data": [{"a": {"b": 1}}]}
    wrapped = ensure_wrapped(body)
    wrapped["data"][0]["a"]["b"] = 2
    assert body["data"][0]["a"]["b"] == 1
    assert ensure_wrapped(None) == {"data": [{}]}
    assert ensure_wrapped({"data": []}) == {"data": [{}]}


def test_set_page_token_replaces_non_object_pagination():
    body = {"data": [{"pagination": None}]}
    set_page_token(body, "t1")
    assert body["data"][0]["pagination"] == {"pageToken": "t1"}


def test_page_records():
    assert page_records(None) == []
    assert page_records([1, 2]) == [1, 2]
    assert page_records({"a": 1}) == [{"a": 1}]
