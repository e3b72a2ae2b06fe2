"""
Bounded-time HTTP GET that only accepts JSON responses.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import requests

from jsoncrawl.config import FETCH_TIMEOUT_S

LOGGER = logging.getLogger(__name__)

# Used when the caller supplies no header map at all
DEFAULT_FETCH_HEADERS: Dict[str, str] = {"Accept": "application/json"}

CHUNK_SIZE = 16 * 1024


@dataclass(slots=True)
class FetchResult:
    """Parsed JSON body and elapsed milliseconds for one successful fetch."""
    data: Any
    response_time: float


class FetchError(Exception):
    """Base class for failures of a single fetch; carries the elapsed time."""

    def __init__(self, message: str, url: str = "", response_time: Optional[float] = None):
        self.url = url
        self.response_time = response_time
        super().__init__(message)


class FetchTimeout(FetchError):
    """The fetch exceeded its wall-clock deadline."""


class HttpStatusError(FetchError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str, url: str = ""):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"HTTP {status_code}: {reason}", url=url)


class NotJsonError(FetchError):
    """The response content-type is not application/json."""


class JsonParseError(FetchError):
    """The response body could not be decoded as JSON."""


class NetworkError(FetchError):
    """Connection-level failure (DNS, refused, reset, unusable URL)."""


def fetch_url(
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    include_cookies: bool = False,
    *,
    session: Optional[requests.Session] = None,
    timeout_s: float = FETCH_TIMEOUT_S,
) -> FetchResult:
    """
    GET url and return its parsed JSON body.

    Args:
        url: Absolute URL to fetch.
        headers: Request headers. None means {"Accept": "application/json"}.
        include_cookies: Send the session's cookies. When False the cookie jar
            is cleared before the request so nothing is sent.
        session: Session to reuse across fetches. A temporary one is used
            when omitted.
        timeout_s: Deadline for the whole request, body download included.

    Returns:
        FetchResult with the decoded body and elapsed milliseconds.

    Raises:
        FetchError: One of its subclasses; response_time is always set.
    """
    start = time.perf_counter()
    request_headers = dict(headers) if headers is not None else dict(DEFAULT_FETCH_HEADERS)

    try:
        if session is None:
            with requests.Session() as own_session:
                data = _get_json(own_session, url, request_headers, include_cookies, timeout_s)
        else:
            data = _get_json(session, url, request_headers, include_cookies, timeout_s)
    except FetchError as exc:
        exc.url = exc.url or url
        exc.response_time = _elapsed_ms(start)
        LOGGER.debug("Fetch failed for %s after %.0f ms: %s", url, exc.response_time, exc)
        raise

    elapsed = _elapsed_ms(start)
    LOGGER.debug("Fetched %s in %.0f ms", url, elapsed)
    return FetchResult(data=data, response_time=elapsed)



def _get_json(
    session: requests.Session,
    url: str,
    headers: Dict[str, str],
    include_cookies: bool,
    timeout_s: float,
) -> Any:
    if not include_cookies:
        session.cookies.clear()

    body = _Download(session, url, headers, timeout_s).run()
    return _parse_json(body, url)


class _Download:
    """
    One GET plus body download, run on a worker thread.

    Socket timeouts only bound each individual read, so a server that trickles
    bytes can keep a read going indefinitely. The caller waits at most
    timeout_s for the worker; past that the response is closed and the
    download abandoned.
    """

    def __init__(
        self,
        session: requests.Session,
        url: str,
        headers: Dict[str, str],
        timeout_s: float,
    ):
        self.session = session
        self.url = url
        self.headers = headers
        self.timeout_s = timeout_s
        self.deadline = time.monotonic() + timeout_s
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._cancelled = False
        self._response: Optional[requests.Response] = None
        self._body = b""
        self._error: Optional[Exception] = None

    def run(self) -> bytes:
        """Download the body or raise the failure, within timeout_s."""
        worker = threading.Thread(
            target=self._work,
            name=f"jsoncrawl-fetch {self.url}",
            daemon=True,
        )
        worker.start()
        if not self._done.wait(self.timeout_s):
            self._cancel()
            raise FetchTimeout(_timeout_message(self.timeout_s), url=self.url)
        if self._error is not None:
            raise self._error
        return self._body

    def _work(self) -> None:
        try:
            self._body = self._download()
        except Exception as exc:
            # Re-raised on the calling thread by run()
            self._error = exc
        finally:
            self._done.set()

    def _cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            response = self._response
        if response is not None:
            LOGGER.debug("Closing response for %s after %gs deadline", self.url, self.timeout_s)
            response.close()

    def _download(self) -> bytes:
        try:
            resp = self.session.get(
                self.url,
                headers=self.headers,
                timeout=self.timeout_s,
                stream=True,
                allow_redirects=True,
            )
        except requests.Timeout as exc:
            raise FetchTimeout(_timeout_message(self.timeout_s), url=self.url) from exc
        except requests.RequestException as exc:
            raise NetworkError(str(exc) or type(exc).__name__, url=self.url) from exc

        with self._lock:
            if self._cancelled:
                resp.close()
                raise FetchTimeout(_timeout_message(self.timeout_s), url=self.url)
            self._response = resp

        try:
            self._check_deadline()
            if not 200 <= resp.status_code < 300:
                raise HttpStatusError(resp.status_code, resp.reason or "", url=self.url)

            content_type = (resp.headers.get("content-type") or "").lower()
            if "application/json" not in content_type:
                raise NotJsonError("Response is not JSON", url=self.url)

            return self._read_body(resp)
        finally:
            resp.close()

    def _read_body(self, resp: requests.Response) -> bytes:
        chunks = []
        try:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                self._check_deadline()
                if chunk:
                    chunks.append(chunk)
        except requests.RequestException as exc:
            # requests reports read timeouts during streaming as ConnectionError
            if isinstance(exc, requests.Timeout) or time.monotonic() >= self.deadline:
                raise FetchTimeout(_timeout_message(self.timeout_s), url=self.url) from exc
            raise NetworkError(str(exc) or type(exc).__name__, url=self.url) from exc
        self._check_deadline()
        return b"".join(chunks)

    def _check_deadline(self) -> None:
        if self._cancelled or time.monotonic() > self.deadline:
            raise FetchTimeout(_timeout_message(self.timeout_s), url=self.url)


def _reject_constant(token: str) -> Any:
    raise ValueError(f"{token} is not valid JSON")


def _parse_json(body: bytes, url: str) -> Any:
    """Decode strict JSON; NaN and Infinity are rejected like any other bad token."""
    try:
        return json.loads(body, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        raise JsonParseError(f"Invalid JSON: {exc}", url=url) from exc


def _timeout_message(timeout_s: float) -> str:
    return f"Request timed out after {timeout_s:g}s"


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
