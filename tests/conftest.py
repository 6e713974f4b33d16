# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from core.config_manager import ConfigManager
from core.server_manager import build_app

from .fakes import PASSWORD, FakeUpstream


def make_config(tmp_path: Path, upstream_url: str, overrides: Optional[dict] = None) -> ConfigManager:
    """
    ConfigManager isolated from the environment and from app_data.

    Overrides use dot notation keys, e.g. {"upstream.timeout": 0.2}.
    """
    config = ConfigManager(tmp_path / "config.json", use_env=False)
    config.set("upstream.url", upstream_url)
    config.set("logging.file", False)
    for key, value in (overrides or {}).items():
        config.set(key, value)
    return config


@pytest_asyncio.fixture()
async def upstream():
    """Fake external API served on a random local port."""
    fake = FakeUpstream()
    server = TestServer(fake.build_app())
    await server.start_server()
    fake.url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()


@pytest.fixture()
def config(tmp_path: Path, upstream: FakeUpstream) -> ConfigManager:
    return make_config(tmp_path, upstream.url)


@pytest_asyncio.fixture()
async def client(config: ConfigManager):
    """Test client for the full application (proxy + UI) in front of the fake upstream."""
    async with TestClient(TestServer(build_app(config))) as test_client:
        yield test_client


async def login(test_client: TestClient, username: str = "admin", password: Optional[str] = None):
    """Logs in through the UI form; the session cookies stay in the client's jar."""
    response = await test_client.post(
        "/login",
        data={"username": username, "password": password or PASSWORD},
        allow_redirects=False,
    )
    assert response.status == 302, await response.text()
    return response


@pytest_asyncio.fixture()
async def admin_client(client: TestClient) -> TestClient:
    await login(client, "admin")
    return client


@pytest_asyncio.fixture()
async def user_client(client: TestClient) -> TestClient:
    await login(client, "alice")
    return client
