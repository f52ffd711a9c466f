from __future__ import annotations

import json
from dataclasses import dataclass, field

import pytest

from ks_forward.config import Config
from ks_forward.http_client import ResilientHttpClient, RetryPolicy


@dataclass
class FakeResponse:
    status_code: int
    text: str = ""


@dataclass
class FakeSession:
    """Replays scripted responses (or raises scripted exceptions) in order."""

    script: list = field(default_factory=list)
    calls: list = field(default_factory=list)

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "headers": headers, "params": params, "json": json, "timeout": timeout}
        )
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        status, body = item
        if not isinstance(body, str):
            body = _dumps(body)
        return FakeResponse(status, body)


def _dumps(value) -> str:
    return json.dumps(value)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_client(sleeps):
    def factory(script, max_attempts: int = 3, base_delay: float = 1.0):
        session = FakeSession(list(script))
        client = ResilientHttpClient(
            RetryPolicy(max_attempts=max_attempts, base_delay=base_delay),
            session=session,
            sleep=sleeps.append,
        )
        return client, session

    return factory


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        channel_id="UCabcdefghij123456",
        ai_api_url="https://ai.example.com/chat",
        discord_webhook_url="https://discord.com/api/webhooks/123/secret-token",
        transcript_api_key="supadata-key-123",
        cache_dir=str(tmp_path / "cache"),
    )
