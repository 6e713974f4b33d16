# tests/test_api_proxy.py

from __future__ import annotations

import json
from pathlib import Path

import pytest
from aiohttp import FormData
from aiohttp.test_utils import TestClient, TestServer

from core.app_keys import PROXY_KEY
from core.proxy.api_proxy import ApiProxy
from core.server_manager import build_app

from .conftest import make_config


@pytest.mark.asyncio
async def test_prefix_stripped_once_and_query_kept(client) -> None:
    resp = await client.get("/api/echo/api/items?x=1&y=two")
    assert resp.status == 200

    data = await resp.json()
    assert data["method"] == "GET"
    assert data["path"] == "/echo/api/items"
    assert data["query"] == "x=1&y=two"


@pytest.mark.asyncio
async def test_only_safe_headers_are_forwarded(client) -> None:
    resp = await client.get(
        "/api/echo",
        headers={
            "Authorization": "Bearer abc",
            "Accept": "application/json",
            "User-Agent": "pytest-agent",
            "X-Custom": "leak",
            "Cookie": "auth_token=secret",
        },
    )
    headers = (await resp.json())["headers"]

    assert headers["authorization"] == "Bearer abc"
    assert headers["accept"] == "application/json"
    assert headers["user-agent"] == "pytest-agent"
    assert "x-custom" not in headers
    assert "cookie" not in headers


@pytest.mark.asyncio
async def test_json_body_is_reserialized(client) -> None:
    resp = await client.post("/api/echo", data='{ "name" : "Задача",  "n": 1 }',
                             headers={"Content-Type": "application/json"})
    data = await resp.json()

    assert data["content_type"].startswith("application/json")
    assert json.loads(data["body"]) == {"name": "Задача", "n": 1}
    assert data["body"] == '{"name":"Задача","n":1}'


@pytest.mark.asyncio
async def test_body_without_content_type_is_sent_as_empty_json_object(client) -> None:
    resp = await client.post("/api/echo")
    data = await resp.json()

    assert data["content_type"] == "application/json"
    assert data["body"] == "{}"


@pytest.mark.asyncio
async def test_get_has_no_body_and_no_default_content_type(client) -> None:
    data = await (await client.get("/api/echo")).json()
    assert data["body"] == ""
    assert data["content_type"] == ""


@pytest.mark.asyncio
async def test_invalid_json_is_rejected_without_calling_upstream(client, upstream) -> None:
    resp = await client.put("/api/echo/1", data=b"{broken",
                            headers={"Content-Type": "application/json"})

    assert resp.status == 400
    assert await resp.json() == {"message": "Invalid JSON body"}
    assert not any(r["path"] == "/echo/1" for r in upstream.requests)


@pytest.mark.asyncio
async def test_urlencoded_body_stays_urlencoded(client) -> None:
    resp = await client.post("/api/echo", data={"username": "alice", "password": "a b&c"})
    data = await resp.json()

    assert data["content_type"].startswith("application/x-www-form-urlencoded")
    assert data["body"] == "username=alice&password=a+b%26c"


@pytest.mark.asyncio
async def test_multipart_upload_passes_through(client) -> None:
    form = FormData()
    form.add_field("file", b"0123456789", filename="notes.txt", content_type="text/plain")

    resp = await client.post("/api/upload", data=form, headers={"Authorization": "Bearer abc"})

    assert resp.status == 201
    assert await resp.json() == {"files": {"notes.txt": 10}}


@pytest.mark.asyncio
async def test_other_content_types_are_forwarded_raw(client) -> None:
    resp = await client.post("/api/echo", data=b"plain words", headers={"Content-Type": "text/plain"})
    data = await resp.json()

    assert data["content_type"] == "text/plain"
    assert data["body"] == "plain words"


@pytest.mark.asyncio
async def test_status_and_content_type_are_mirrored(client) -> None:
    resp = await client.get("/api/plain")

    assert resp.status == 418
    assert resp.content_type == "text/plain"
    assert await resp.text() == "short and stout"


@pytest.mark.asyncio
async def test_upstream_error_status_is_mirrored(client) -> None:
    resp = await client.get("/api/tasks/")

    assert resp.status == 401
    assert await resp.json() == {"detail": "Not authenticated"}


@pytest.mark.asyncio
async def test_undecodable_json_response_is_passed_as_is(client) -> None:
    resp = await client.get("/api/broken-json")

    assert resp.status == 200
    assert await resp.read() == b"{not json"


@pytest.mark.asyncio
async def test_upstream_response_headers_are_copied(client) -> None:
    resp = await client.get("/api/echo")

    assert resp.headers["X-Upstream"] == "fake"
    assert resp.headers["Content-Type"] == "application/json; charset=utf-8"


@pytest.mark.asyncio
async def test_authorized_request_reaches_protected_endpoint(client) -> None:
    resp = await client.get("/api/tasks/", headers={"Authorization": "Bearer token"})

    assert resp.status == 200
    names = [t["name"] for t in await resp.json()]
    assert names == ["Write docs", "Fix login bug"]


@pytest.mark.asyncio
async def test_unreachable_upstream_returns_502(tmp_path: Path) -> None:
    config = make_config(tmp_path, "http://127.0.0.1:1", {"upstream.connect_timeout": 2})
    async with TestClient(TestServer(build_app(config))) as test_client:
        resp = await test_client.get("/api/tasks/")
        assert resp.status == 502
        assert await resp.json() == {"error": "External API error"}

        form = FormData()
        form.add_field("file", b"x", filename="a.txt")
        resp = await test_client.post("/api/tasks/1/attachment", data=form)
        assert resp.status == 502
        assert await resp.json() == {"error": "File upload failed"}


@pytest.mark.asyncio
async def test_slow_upstream_returns_504(tmp_path: Path, upstream) -> None:
    config = make_config(tmp_path, upstream.url, {"upstream.timeout": 0.2})
    async with TestClient(TestServer(build_app(config))) as test_client:
        resp = await test_client.get("/api/slow")
        assert resp.status == 504
        assert await resp.json() == {"error": "External API timeout"}


@pytest.mark.asyncio
async def test_stats_count_requests_and_errors(tmp_path: Path) -> None:
    config = make_config(tmp_path, "http://127.0.0.1:1")
    app = build_app(config)
    async with TestClient(TestServer(app)) as test_client:
        await test_client.get("/api/anything")

    stats = app[PROXY_KEY].get_full_stats()
    assert stats["requests"] == 1
    assert stats["errors"] == 1
    assert stats["active"] == 0


def test_build_target_url() -> None:
    proxy = ApiProxy("https://upstream.example/", prefix="/api")

    assert proxy.build_target_url("/api/tasks/1?full=1") == "https://upstream.example/tasks/1?full=1"
    assert proxy.build_target_url("/api") == "https://upstream.example"
    assert proxy.build_target_url("/api/api/x") == "https://upstream.example/api/x"


def test_from_config_reads_upstream_and_proxy_sections(tmp_path: Path) -> None:
    config = make_config(tmp_path, "http://upstream.local", {
        "proxy.prefix": "/backend",
        "proxy.safe_headers": ["Authorization"],
        "upstream.timeout": 12,
    })
    proxy = ApiProxy.from_config(config)

    assert proxy.upstream_url == "http://upstream.local"
    assert proxy.prefix == "/backend"
    assert proxy.safe_headers == ("authorization",)
    assert proxy.timeout == 12
