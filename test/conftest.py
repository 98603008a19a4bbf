"""Shared fixtures: a routed stand-in for requests.Session and response builders."""

import io
import json
import threading
from typing import Any, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from urllib3.response import HTTPResponse

BASE_URL = "https://mimiq.example.com"


def make_response(
    status: int = 200,
    json_body: Any = None,
    content: Optional[bytes] = None,
    headers: Optional[dict] = None,
) -> requests.Response:
    """Build a fully read requests.Response."""
    response = requests.Response()
    response.status_code = status
    if json_body is not None:
        content = json.dumps(json_body).encode("utf-8")
    response._content = content or b""
    response._content_consumed = True
    response.headers = CaseInsensitiveDict(headers or {})
    response.encoding = "utf-8"
    return response


def make_stream_response(
    body: bytes, headers: Optional[dict] = None, status: int = 200
) -> requests.Response:
    """Build a response whose body is streamed from a raw urllib3 response."""
    response = requests.Response()
    response.status_code = status
    response.headers = CaseInsensitiveDict(headers or {})
    response.raw = HTTPResponse(
        body=io.BytesIO(body),
        headers=headers or {},
        status=status,
        preload_content=False,
    )
    return response


class FakeSession:
    """Routes (method, url) to queued responses and records every call.

    The last queued entry of a route is reused once the others are consumed.
    Entries may be responses, exceptions (raised) or callables (called with
    the request keyword arguments).
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[tuple[str, str, dict]] = []
        self.closed = False
        self._lock = threading.Lock()

    def add(self, method: str, url: str, *entries: Any) -> "FakeSession":
        self.routes.setdefault((method, url), []).extend(entries)
        return self

    def calls_to(self, method: str, url: str) -> list[dict]:
        with self._lock:
            return [kw for m, u, kw in self.calls if m == method and u == url]

    def _dispatch(self, method: str, url: str, **kwargs: Any):
        with self._lock:
            self.calls.append((method, url, kwargs))
            queue = self.routes.get((method, url))
            if not queue:
                raise AssertionError(f"Unexpected request {method} {url}")
            entry = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return entry(**kwargs)
        return entry

    def get(self, url: str, **kwargs: Any):
        return self._dispatch("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any):
        return self._dispatch("POST", url, **kwargs)

    def close(self) -> None:
        self.closed = True


class StubConnection:
    """Connection with a fixed token, for execution client tests."""

    def __init__(self, session: FakeSession, uri: str = BASE_URL, token: str = "access-1"):
        self.uri = uri
        self.session = session
        self.token = token
        self.closed = False

    def auth_header(self):
        return "Authorization", f"Bearer {self.token}"

    def resource_uri(self, *parts):
        return "/".join([self.uri, "api"] + [str(p) for p in parts])

    def close(self):
        self.closed = True

    def is_open(self):
        return not self.closed


LIMITS = {
    "enabledMaxExecutions": True,
    "usedExecutions": 3,
    "maxExecutions": 100,
    "enabledExecutionTime": True,
    "usedExecutionTime": 600,
    "maxExecutionTime": 36000,
    "enabledMaxTimeout": False,
    "maxTimeout": 0,
}


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def native_session(session: FakeSession) -> FakeSession:
    """Session answering the limits and refresh endpoints of BASE_URL."""
    session.add("GET", f"{BASE_URL}/api/users/limits", make_response(200, LIMITS))
    session.add(
        "POST",
        f"{BASE_URL}/api/access-token",
        make_response(200, {"token": "access-2", "refreshToken": "refresh-2"}),
    )
    return session


def wait_until(predicate, timeout: float = 3.0, step: float = 0.01) -> bool:
    """Poll `predicate` until it is true or `timeout` elapsed."""
    event = threading.Event()
    waited = 0.0
    while waited < timeout:
        if predicate():
            return True
        event.wait(step)
        waited += step
    return predicate()
