# tests/test_api_client.py

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from core.api_client import ApiClient, ApiError, build_dashboard_stats, create_http_client


def _client(handler: Callable[[httpx.Request], httpx.Response], token: str = "tok") -> ApiClient:
    http = create_http_client("http://upstream.test/", transport=httpx.MockTransport(handler))
    return ApiClient(http, token)


class Recorder:
    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = responses
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.method} {request.url.path}"
        status, body = self.responses.get(key, (404, {"detail": "Not Found"}))
        return httpx.Response(status, json=body)


@pytest.mark.asyncio
async def test_bearer_token_and_list_unwrapping() -> None:
    recorder = Recorder({
        "GET /tasks/": (200, [{"id": 1, "name": "A"}]),
        "GET /users/": (200, {"users": [{"id": 1, "username": "u"}]}),
    })
    api = _client(recorder)

    tasks = await api.get_tasks()
    users = await api.get_users()

    assert [t.id for t in tasks] == ["1"]
    assert [u.username for u in users] == ["u"]
    assert recorder.requests[0].headers["authorization"] == "Bearer tok"
    assert str(recorder.requests[0].url) == "http://upstream.test/tasks/"


@pytest.mark.asyncio
async def test_get_user_unwraps_nested_user() -> None:
    api = _client(Recorder({"GET /users/5": (200, {"user": {"id": 5, "username": "eve"}})}))
    user = await api.get_user("5")
    assert user.username == "eve"


@pytest.mark.asyncio
async def test_error_status_raises_api_error() -> None:
    api = _client(Recorder({}))
    with pytest.raises(ApiError) as exc:
        await api.get_task("42")
    assert exc.value.status == 404
    assert "Not Found" in exc.value.body


@pytest.mark.asyncio
async def test_login_posts_form_without_token() -> None:
    recorder = Recorder({"POST /auth/login": (200, {"access_token": "abc"})})
    api = _client(recorder, token=None)

    assert await api.login("bob", "pw secret") == {"access_token": "abc"}

    request = recorder.requests[0]
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert request.content == b"username=bob&password=pw+secret"
    assert "authorization" not in request.headers


@pytest.mark.asyncio
async def test_assign_and_comment_payloads() -> None:
    recorder = Recorder({
        "POST /tasks/assign-task/3": (200, {"id": 3, "user_id": 9, "status": "assigned"}),
        "POST /tasks/3/comments": (201, {"comment": "hi"}),
    })
    api = _client(recorder)

    task = await api.assign_task("3", "9")
    await api.add_comment("3", "hi")

    assert task.user_id == "9"
    assert json.loads(recorder.requests[0].content) == {"user_id": "9", "status": "assigned"}
    assert json.loads(recorder.requests[1].content) == {"comment": "hi"}


@pytest.mark.asyncio
async def test_upload_attachment_is_multipart() -> None:
    recorder = Recorder({"POST /tasks/3/attachment": (200, {"id": 3})})
    api = _client(recorder)

    await api.upload_attachment("3", "a.txt", b"data", "text/plain")

    request = recorder.requests[0]
    assert request.headers["content-type"].startswith("multipart/form-data; boundary=")
    assert b'filename="a.txt"' in request.content


@pytest.mark.asyncio
async def test_delete_with_empty_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    await _client(handler).delete_task("1")


@pytest.mark.asyncio
async def test_dashboard_stats() -> None:
    recorder = Recorder({
        "GET /tasks/": (200, [{"id": 1, "status": "done"}, {"id": 2, "status": "assigned"}, {"id": 3}]),
        "GET /users/": (200, [{"id": 1}]),
    })
    stats = await _client(recorder).get_dashboard_stats()

    assert stats.total_tasks == 3
    assert stats.active_users == 1
    assert stats.completed_tasks == 1
    assert stats.in_progress_tasks == 1


def test_build_dashboard_stats_empty() -> None:
    stats = build_dashboard_stats([], [])
    assert stats.model_dump() == {"total_tasks": 0, "active_users": 0, "completed_tasks": 0, "in_progress_tasks": 0}


def test_api_error_message() -> None:
    assert str(ApiError(500, "", "Internal Server Error")) == "500: Internal Server Error"
