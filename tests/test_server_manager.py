# tests/test_server_manager.py

from __future__ import annotations

import logging
import socket
from pathlib import Path

import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer

from core.server_manager import ServerManager, build_app, check_upstream_health

from .conftest import make_config


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.mark.asyncio
async def test_upstream_health(upstream) -> None:
    assert await check_upstream_health(upstream.url) == {"status": "healthy", "error": None}
    assert (await check_upstream_health("http://127.0.0.1:1", timeout=2))["status"] == "unreachable"
    assert (await check_upstream_health(""))["error"] == "Upstream URL not configured"


@pytest.mark.asyncio
async def test_start_serve_and_stop(tmp_path: Path, upstream) -> None:
    port = _free_port()
    config = make_config(tmp_path, upstream.url, {"server.host": "127.0.0.1", "server.port": port})
    manager = ServerManager(config)

    assert await manager.start()
    try:
        assert manager.get_status()["running"]
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://127.0.0.1:{port}/api/echo/ping") as resp:
                assert resp.status == 200
                assert (await resp.json())["path"] == "/echo/ping"

        assert manager.get_proxy_stats()["requests"] == 1
        assert not await manager.start()
    finally:
        await manager.stop()

    assert not manager.is_running
    assert manager.get_proxy_stats() is None


@pytest.mark.asyncio
async def test_busy_port_is_reported(tmp_path: Path, upstream) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen()
        port = s.getsockname()[1]

        config = make_config(tmp_path, upstream.url, {"server.host": "127.0.0.1", "server.port": port})
        manager = ServerManager(config)

        assert not await manager.start()

    assert manager.last_error_type == "port"
    assert manager.get_status()["error_type"] == "port"


@pytest.mark.asyncio
async def test_https_mode_creates_certificate(tmp_path: Path, upstream, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKBOARD_DATA_DIR", str(tmp_path / "data"))
    config = make_config(tmp_path, upstream.url, {
        "server.host": "127.0.0.1",
        "server.port": _free_port(),
        "server.ssl": True,
    })
    manager = ServerManager(config)

    assert await manager.start()
    try:
        assert manager.scheme == "https"
        assert (tmp_path / "data" / "certificates" / "taskboard.crt").exists()
    finally:
        await manager.stop()


@pytest.mark.asyncio
async def test_built_app_logs_api_errors(tmp_path: Path, upstream, caplog) -> None:
    caplog.set_level(logging.INFO, logger="core.middlewares")
    app = build_app(make_config(tmp_path, upstream.url))

    async def boom(request):
        raise RuntimeError("kaboom")

    app.router.add_get("/api-boom", boom)

    async with TestClient(TestServer(app)) as client:
        resp = await client.get("/api-boom")
        assert resp.status == 500
        assert await resp.json() == {"message": "kaboom"}

    assert any(r.getMessage().startswith("GET /api-boom 500 in ") for r in caplog.records)
