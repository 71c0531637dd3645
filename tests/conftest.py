from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from graph_mail.credentials.models import GraphMailConfig

TOKEN_HOST = "login.microsoftonline.com"


class DummyResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakePost:
    """Stands in for requests.post, answering token and sendMail URLs separately."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.token_response: DummyResponse | Exception = DummyResponse(
            200, {"access_token": "token-1", "expires_in": 3600, "token_type": "Bearer"}
        )
        self.send_response: DummyResponse | Exception = DummyResponse(202, None)
        self.token_delay = 0.0
        self._lock = threading.Lock()

    def __call__(self, url, **kwargs):
        with self._lock:
            self.calls.append({"url": url, **kwargs})
        is_token = TOKEN_HOST in url
        if is_token and self.token_delay:
            time.sleep(self.token_delay)
        response = self.token_response if is_token else self.send_response
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def token_calls(self) -> list[dict]:
        return [call for call in self.calls if TOKEN_HOST in call["url"]]

    @property
    def send_calls(self) -> list[dict]:
        return [call for call in self.calls if TOKEN_HOST not in call["url"]]


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def fake_post(monkeypatch) -> FakePost:
    fake = FakePost()
    monkeypatch.setattr("graph_mail.auth.token_manager.requests.post", fake)
    return fake


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def config() -> GraphMailConfig:
    return GraphMailConfig(
        tenant_id="tenant-123",
        client_id="client-abc",
        client_secret="s3cret",
        sender_email="noreply@example.com",
        sender_name="Notifications",
        save_to_sent_items=True,
    )
