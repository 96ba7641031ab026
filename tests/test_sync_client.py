"""Unit tests for SyncClient against mocked HTTP transports."""

import asyncio
import datetime as _dt
import json

import httpx
import pytest

from privault.sync.client import SyncClient, SyncClientState
from privault.sync.device import DeviceIdentity
from privault.sync.models import FileMetadata, VaultFileMetadata
from privault.utils.errors import (
    AuthenticationError, DecodingError, NotAuthenticated, SyncServerError, SyncTimeout,
)
from privault.utils.helper import parse_rfc3339

AUTH = {"token": "tok-123", "expires_at": 1900000000, "user_id": 7}
MODIFIED = _dt.datetime(2024, 5, 1, 12, 0, tzinfo=_dt.timezone.utc)


def wire(record_id, version=1, deleted=False):
    return {
        "id": record_id,
        "encrypted_data": "" if deleted else "b64blob",
        "user_id": 7,
        "version": version,
        "last_modified_at": "2024-05-01T12:00:00Z",
        "is_deleted": deleted,
    }


def make_client(handler, candidates=("http://primary:8080",), **kwargs):
    return SyncClient(
        DeviceIdentity("3F2504E0-4F89-11D3-9A0C-0305E82C3301"),
        candidates=candidates,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def online_handler(routes):
    """Handler serving /api/status, /api/auth/* and the given extra routes."""
    def handler(request):
        path = request.url.path
        if path == "/api/status":
            return httpx.Response(200, json={"status": "online"})
        if path in ("/api/auth/login", "/api/auth/register"):
            return httpx.Response(200, json=AUTH)
        route = routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request)
    return handler


async def logged_in(handler, **kwargs):
    client = make_client(handler, **kwargs)
    assert await client.connect()
    await client.login("alice", "pw")
    return client


@pytest.mark.asyncio
async def test_connect_falls_through_to_next_candidate():
    def handler(request):
        if request.url.host == "down":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"status": "online"})

    client = make_client(handler, candidates=["http://down:8080", "http://up:3000"])
    assert await client.connect()
    assert client.server_url == "http://up:3000"
    assert client.state is SyncClientState.CONNECTED
    await client.aclose()


@pytest.mark.asyncio
async def test_connect_without_any_server_returns_false():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler, candidates=["http://a:8080", "http://b:3000", "http://c:5000"])
    assert await client.connect() is False
    assert client.state is SyncClientState.DISCONNECTED
    assert client.last_error is not None
    await client.aclose()


@pytest.mark.asyncio
async def test_connect_requires_online_status():
    def handler(request):
        if request.url.host == "maintenance":
            return httpx.Response(200, json={"status": "maintenance"})
        return httpx.Response(200, json={"status": "online"})

    client = make_client(handler, candidates=["http://maintenance:8080", "http://ok:5000"])
    assert await client.connect()
    assert client.server_url == "http://ok:5000"
    await client.aclose()


@pytest.mark.asyncio
async def test_slow_probe_times_out():
    async def handler(request):
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={"status": "online"})

    client = make_client(handler, probe_timeout=0.05)
    assert await client.connect() is False
    await client.aclose()


@pytest.mark.asyncio
async def test_login_sends_credentials_and_device():
    seen = []

    def handler(request):
        if request.url.path == "/api/auth/login":
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=AUTH)
        return httpx.Response(200, json={"status": "online"})

    client = make_client(handler)
    await client.connect()
    session = await client.login("alice", "pw")

    assert session.token == "tok-123"
    assert session.user_id == 7
    assert seen == [{"username": "alice", "password": "pw",
                     "device_id": "3F2504E0-4F89-11D3-9A0C-0305E82C3301"}]
    assert client.state is SyncClientState.AUTHENTICATED
    assert "tok-123" not in repr(session)
    await client.aclose()


@pytest.mark.asyncio
async def test_register_failure_carries_server_message():
    def handler(request):
        if request.url.path == "/api/auth/register":
            return httpx.Response(409, json={"error": "Username already exists"})
        return httpx.Response(200, json={"status": "online"})

    client = make_client(handler)
    await client.connect()
    with pytest.raises(AuthenticationError) as exc_info:
        await client.register("alice", "pw")

    assert exc_info.value.user_message == "Username already exists"
    assert not client.is_authenticated
    await client.aclose()


@pytest.mark.asyncio
async def test_login_with_garbage_body_is_decoding_error():
    def handler(request):
        if request.url.path == "/api/auth/login":
            return httpx.Response(200, content=b"<html>ok</html>")
        return httpx.Response(200, json={"status": "online"})

    client = make_client(handler)
    await client.connect()
    with pytest.raises(DecodingError):
        await client.login("alice", "pw")
    await client.aclose()


@pytest.mark.asyncio
async def test_push_without_login_sends_nothing():
    requests = []

    def handler(request):
        requests.append(request.url.path)
        return httpx.Response(200, json={"status": "online"})

    client = make_client(handler)
    with pytest.raises(NotAuthenticated):
        await client.push_metadata([])
    with pytest.raises(NotAuthenticated):
        await client.list_metadata()

    assert requests == []
    await client.aclose()


@pytest.mark.asyncio
async def test_push_sends_bearer_token_and_wire_body():
    captured = {}

    def sync(request):
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "updated_items": [wire("id-1")],
            "deleted_ids": [],
            "sync_token": "t1",
            "timestamp": "2024-05-01T12:00:01Z",
        })

    client = await logged_in(online_handler({("POST", "/api/sync"): sync}))
    record = VaultFileMetadata("id-1", "b64blob", 1, MODIFIED)
    result = await client.push_metadata([record], sync_token="t0")

    assert captured["auth"] == "Bearer tok-123"
    assert captured["body"] == {
        "device_id": "3F2504E0-4F89-11D3-9A0C-0305E82C3301",
        "items": [wire("id-1")],
        "sync_token": "t0",
    }
    assert result.sync_token == "t1"
    assert [r.id for r in result.updated_records] == ["id-1"]
    assert result.server_timestamp == MODIFIED.replace(second=1)
    await client.aclose()


@pytest.mark.asyncio
async def test_error_field_wins_over_success_status():
    def sync(request):
        return httpx.Response(200, json={"error": "database unavailable", "sync_token": "t9"})

    client = await logged_in(online_handler({("POST", "/api/sync"): sync}))
    with pytest.raises(SyncServerError) as exc_info:
        await client.push_metadata([])

    assert exc_info.value.user_message == "database unavailable"
    await client.aclose()


@pytest.mark.asyncio
async def test_partially_malformed_sync_response_degrades():
    def sync(request):
        return httpx.Response(200, json={
            "updated_items": [wire("good"), {"id": 5}, wire("also-good", version=3)],
            "deleted_ids": "not-a-list",
            "sync_token": "t2",
            "timestamp": "not a timestamp",
        })

    client = await logged_in(online_handler({("POST", "/api/sync"): sync}))
    before = _dt.datetime.now(_dt.timezone.utc) - _dt.timedelta(seconds=5)
    result = await client.push_metadata([])

    assert [r.id for r in result.updated_records] == ["good", "also-good"]
    assert result.deleted_ids == []
    assert result.sync_token == "t2"
    assert result.server_timestamp >= before
    await client.aclose()


@pytest.mark.asyncio
async def test_non_json_sync_response_is_decoding_error():
    def sync(request):
        return httpx.Response(200, content=b"Internal proxy page")

    client = await logged_in(online_handler({("POST", "/api/sync"): sync}))
    with pytest.raises(DecodingError):
        await client.push_metadata([])
    await client.aclose()


@pytest.mark.asyncio
async def test_server_error_status_without_body():
    def sync(request):
        return httpx.Response(502, content=b"Bad Gateway")

    client = await logged_in(online_handler({("POST", "/api/sync"): sync}))
    with pytest.raises(SyncServerError):
        await client.push_metadata([])
    await client.aclose()


@pytest.mark.asyncio
async def test_slow_sync_raises_timeout():
    async def sync(request):
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={"sync_token": "late"})

    client = await logged_in(online_handler({("POST", "/api/sync"): sync}), sync_timeout=0.05)
    with pytest.raises(SyncTimeout):
        await client.push_metadata([])
    await client.aclose()


@pytest.mark.asyncio
async def test_sync_exchanges_are_serialised():
    active = {"now": 0, "max": 0}

    async def sync(request):
        active["now"] += 1
        active["max"] = max(active["max"], active["now"])
        await asyncio.sleep(0.02)
        active["now"] -= 1
        return httpx.Response(200, json={"sync_token": "t", "timestamp": "2024-05-01T12:00:00Z"})

    client = await logged_in(online_handler({("POST", "/api/sync"): sync}))
    await asyncio.gather(*(client.push_metadata([]) for _ in range(4)))

    assert active["max"] == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_unauthorized_response_drops_session():
    def metadata(request):
        return httpx.Response(401, json={"error": "token expired"})

    client = await logged_in(online_handler({("GET", "/api/metadata"): metadata}))
    with pytest.raises(NotAuthenticated):
        await client.list_metadata()

    assert not client.is_authenticated
    with pytest.raises(NotAuthenticated):
        await client.push_metadata([])
    await client.aclose()


@pytest.mark.asyncio
async def test_metadata_crud():
    store = {"id-1": wire("id-1")}

    def list_all(request):
        return httpx.Response(200, json=list(store.values()))

    def get_one(request):
        return httpx.Response(200, json=store["id-1"])

    def add(request):
        body = json.loads(request.content)
        store[body["id"]] = body
        return httpx.Response(201, json=body)

    def update(request):
        body = json.loads(request.content)
        store["id-1"] = body
        return httpx.Response(200, json=body)

    def delete(request):
        if store.pop("id-1", None) is None:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json={"message": "Metadata deleted successfully"})

    client = await logged_in(online_handler({
        ("GET", "/api/metadata"): list_all,
        ("GET", "/api/metadata/id-1"): get_one,
        ("POST", "/api/metadata"): add,
        ("PUT", "/api/metadata/id-1"): update,
        ("DELETE", "/api/metadata/id-1"): delete,
    }))

    assert [r.id for r in await client.list_metadata()] == ["id-1"]
    assert (await client.get_metadata("id-1")).version == 1

    added = await client.add_metadata(FileMetadata("id-2", "blob2", 7, 1, MODIFIED))
    assert added.id == "id-2"

    updated = await client.update_metadata("id-1", FileMetadata("id-1", "blob3", 7, 2, MODIFIED))
    assert updated.version == 2

    await client.delete_metadata("id-1")
    assert sorted(store) == ["id-2"]

    with pytest.raises(SyncServerError) as exc_info:
        await client.delete_metadata("id-1")
    assert exc_info.value.user_message == "not found"
    await client.aclose()


@pytest.mark.asyncio
async def test_empty_metadata_list_may_be_null():
    def list_all(request):
        return httpx.Response(200, content=b"null", headers={"Content-Type": "application/json; charset=utf-8"})

    client = await logged_in(online_handler({("GET", "/api/metadata"): list_all}))
    assert await client.list_metadata() == []
    await client.aclose()


@pytest.mark.asyncio
async def test_sync_status():
    def status(request):
        return httpx.Response(200, json={
            "last_sync_at": "2024-05-01T12:00:00.123456789Z",
            "device_id": "DEV",
            "item_count": 4,
            "sync_token": "abc",
        })

    client = await logged_in(online_handler({("GET", "/api/sync/status"): status}))
    result = await client.sync_status()

    assert result.item_count == 4
    assert result.last_sync_at == MODIFIED.replace(microsecond=123456)
    await client.aclose()


def test_parse_rfc3339_variants():
    assert parse_rfc3339("2024-05-01T12:00:00Z") == MODIFIED
    assert parse_rfc3339("2024-05-01T14:00:00+02:00") == MODIFIED
    assert parse_rfc3339("2024-05-01T12:00:00.999999999Z").microsecond == 999999
    with pytest.raises(ValueError):
        parse_rfc3339("yesterday")
    with pytest.raises(ValueError):
        parse_rfc3339(None)


@pytest.mark.asyncio
async def test_check_status_and_logout():
    up = {"online": True}

    def handler(request):
        if request.url.path == "/api/status":
            if not up["online"]:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"status": "online"})
        return httpx.Response(200, json=AUTH)

    client = make_client(handler)
    assert await client.check_status() is False
    await client.connect()
    await client.login("alice", "pw")
    assert await client.check_status() is True

    up["online"] = False
    assert await client.check_status() is False

    client.logout()
    assert client.state is SyncClientState.CONNECTED
    await client.aclose()


@pytest.mark.asyncio
async def test_malformed_candidate_url_is_skipped():
    def handler(request):
        return httpx.Response(200, json={"status": "online"})

    client = make_client(handler, candidates=["http://\x00broken", "http://ok:5000"])
    assert await client.connect()
    assert client.server_url == "http://ok:5000"
    await client.aclose()
