# tests/test_headers.py

from __future__ import annotations

from multidict import CIMultiDict

from core.proxy.headers import filter_request_headers, filter_response_headers


def test_request_headers_are_whitelisted_and_lowercased() -> None:
    headers = CIMultiDict(
        {
            "Authorization": "Bearer t",
            "Content-Type": "application/json",
            "Cookie": "a=b",
            "Host": "localhost",
            "X-Forwarded-For": "10.0.0.1",
        }
    )

    assert filter_request_headers(headers) == {
        "authorization": "Bearer t",
        "content-type": "application/json",
    }


def test_custom_safe_header_list() -> None:
    headers = {"X-Trace": "1", "Accept": "*/*"}
    assert filter_request_headers(headers, ["x-trace"]) == {"x-trace": "1"}


def test_response_hop_by_hop_headers_are_dropped() -> None:
    headers = CIMultiDict()
    headers.add("Content-Type", "application/json")
    headers.add("Content-Length", "10")
    headers.add("Content-Encoding", "gzip")
    headers.add("Transfer-Encoding", "chunked")
    headers.add("Connection", "keep-alive")
    headers.add("Set-Cookie", "a=1")
    headers.add("Set-Cookie", "b=2")

    result = filter_response_headers(headers)

    assert result["Content-Type"] == "application/json"
    assert result.getall("Set-Cookie") == ["a=1", "b=2"]
    for name in ("Content-Length", "Content-Encoding", "Transfer-Encoding", "Connection"):
        assert name not in result
