from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests

# Ensure project root is on sys.path for absolute imports like 'sheetsync.tokens'
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from sheetsync.store import MemoryCredentialStore  # noqa: E402


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None):
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.text = text
        elif payload is not None:
            self.text = json.dumps(payload)
        else:
            self.text = ""
        self.content = self.text.encode()

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Records every call and answers through a handler.

    The handler receives (method, url, kwargs) and returns a FakeResponse or
    raises a requests exception.
    """

    def __init__(self, handler: Callable[[str, str, Dict[str, Any]], FakeResponse]):
        self.handler = handler
        self.calls: List[tuple] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        return self.handler(method, url, kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("POST", url, **kwargs)

    def paths(self) -> List[str]:
        return [f"{m} {u.split('api.hubapi.com', 1)[-1]}" for m, u, _ in self.calls]


class CountingStore(MemoryCredentialStore):
    """In-memory store that counts writes."""

    def __init__(self, credential=None):
        super().__init__(credential)
        self.saves = 0

    def save(self, credential) -> None:
        super().save(credential)
        self.saves += 1


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_session():
    def _make(handler):
        return FakeSession(handler)
    return _make


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "CLIENT_ID", "CLIENT_SECRET", "REDIRECT_URI", "SCOPE", "TOKEN_PATH",
        "DEDUPE", "LINK_COMPANIES", "FAIL_OPEN", "REQUESTS_PER_SECOND", "HTTP_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
