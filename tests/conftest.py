"""Shared fakes for the requests layer."""

from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Iterator, List, Optional, Union
from unittest.mock import MagicMock

import pytest
import requests
from requests.cookies import RequestsCookieJar
from requests.structures import CaseInsensitiveDict


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    *,
    body: Optional[bytes] = None,
    content_type: Optional[str] = "application/json",
    reason: str = "OK",
    chunks: Optional[List[Any]] = None,
) -> MagicMock:
    """Build a streamed response double."""
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.reason = reason
    headers = CaseInsensitiveDict()
    if content_type is not None:
        headers["Content-Type"] = content_type
    resp.headers = headers

    if chunks is None:
        if body is None:
            body = json.dumps(json_body).encode("utf-8")
        chunks = [body]

    def iter_content(chunk_size=1):
        for chunk in chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk

    resp.iter_content.side_effect = iter_content
    return resp


class FakeSession:
    """Session double that serves canned responses per URL and records calls."""

    def __init__(self, routes: Optional[Dict[str, Union[MagicMock, BaseException, Any]]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.cookies = RequestsCookieJar()
        self.calls: List[Dict[str, Any]] = []
        self.cookies_at_call: List[Dict[str, str]] = []

    def get(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        self.cookies_at_call.append(self.cookies.get_dict())
        if url not in self.routes:
            return make_response(404, {"detail": "not found"}, reason="Not Found")
        route = self.routes[url]
        if isinstance(route, BaseException):
            raise route
        if isinstance(route, MagicMock):
            return route
        return make_response(200, route)

    @property
    def fetched_urls(self) -> List[str]:
        return [call["url"] for call in self.calls]

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


@pytest.fixture
def fake_session():
    """Factory for FakeSession instances keyed by URL."""
    return FakeSession


# Seconds between bytes sent by the trickling endpoints
TRICKLE_INTERVAL = 0.2


class _TrickleHandler(BaseHTTPRequestHandler):
    """Local endpoints that answer normally or dribble bytes one at a time."""

    def do_GET(self):
        if self.path == "/slow-headers":
            self._trickle(b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n")
        elif self.path == "/slow-body":
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Connection", "close")
            self.end_headers()
            self._trickle(b"[" + b"1," * 10_000)
        else:
            body = json.dumps({"ok": True, "self": self.path}).encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

    def _trickle(self, payload: bytes) -> None:
        stop = self.server.stop_event
        try:
            for index in range(len(payload)):
                if stop.is_set():
                    return
                self.wfile.write(payload[index:index + 1])
                self.wfile.flush()
                stop.wait(TRICKLE_INTERVAL)
        except OSError:
            return

    def log_message(self, format, *args):
        return


@pytest.fixture
def trickle_server(monkeypatch) -> Iterator[str]:
    """Start a local HTTP server with normal and byte-trickling endpoints."""
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)

    server = ThreadingHTTPServer(("127.0.0.1", 0), _TrickleHandler)
    server.daemon_threads = True
    server.stop_event = threading.Event()
    host, port = server.server_address
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://{host}:{port}"
    finally:
        server.stop_event.set()
        server.shutdown()
        thread.join(timeout=5)
        server.server_close()
