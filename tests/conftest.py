from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import Mock

import keyring
import pytest
import requests
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError, PasswordSetError

from agora.api_interface import ForumAPI
from agora.auth import Session
from agora.auth_storage import TokenStore

BASE_URL = "https://forum.test/api"


class MemoryKeyring(KeyringBackend):
    """In-memory keyring; max_value_len mimics backends with per-credential limits.

    locked makes every read fail and reject_writes makes every write fail,
    the way a locked desktop keyring behaves.
    """

    priority = 1

    def __init__(self, max_value_len: Optional[int] = None):
        super().__init__()
        self.values: Dict[Tuple[str, str], str] = {}
        self.max_value_len = max_value_len
        self.locked = False
        self.reject_writes = False

    def get_password(self, service, username):
        if self.locked:
            raise KeyringError("locked keyring")
        return self.values.get((service, username))

    def set_password(self, service, username, password):
        if self.reject_writes:
            raise PasswordSetError("keyring is read-only")
        if self.max_value_len is not None and len(password) > self.max_value_len:
            raise PasswordSetError("value too large")
        self.values[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.values[(service, username)]
        except KeyError:
            raise PasswordDeleteError("not found")


def make_response(status: int = 200, body: Any = None, raw: Optional[str] = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    if raw is not None:
        resp._content = raw.encode("utf-8")
        resp.headers["Content-Type"] = "text/html"
    elif body is None:
        resp._content = b""
    else:
        resp._content = json.dumps(body).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    return resp


class FakeBackend:
    """Routes (method, path) to canned responses, exceptions or handlers."""

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[SimpleNamespace] = []

    def add(self, method: str, path: str, status: int = 200, body: Any = None, raw: Optional[str] = None) -> None:
        self.routes[(method, path)] = make_response(status, body, raw)

    def fail(self, method: str, path: str, exc: Exception) -> None:
        self.routes[(method, path)] = exc

    def handle(self, method: str, path: str, handler: Callable[[SimpleNamespace], requests.Response]) -> None:
        self.routes[(method, path)] = handler

    def paths(self) -> List[str]:
        return [c.path for c in self.calls]

    def __call__(self, method, url, params=None, json=None, headers=None, timeout=None, **kwargs):
        call = SimpleNamespace(
            method=method,
            path=url[len(self.base_url):],
            params=params,
            json=json,
            headers=headers or {},
            timeout=timeout,
        )
        self.calls.append(call)
        route = self.routes.get((method, call.path))
        if route is None:
            return make_response(404, {"message": "Not found"})
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(call)
        return route


@pytest.fixture
def memory_keyring():
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def store(memory_keyring):
    return TokenStore(service="agora-test")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api(backend, store):
    http = requests.Session()
    http.request = Mock(side_effect=backend)
    return ForumAPI(BASE_URL, store=store, timeout=10.0, session=http)


@pytest.fixture
def session(api, store):
    s = Session(api=api, store=store)
    yield s
    s.close()


@pytest.fixture
def user_payload():
    return {
        "id": "u1",
        "email": "a@example.com",
        "username": "alice",
        "avatar": "https://cdn.test/a.png",
        "role": "moderator",
        "reputation": 42,
        "createdAt": "2024-03-01T10:00:00Z",
    }
