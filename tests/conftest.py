"""
Pytest configuration for the Redeem Player tests
Provides common fixtures and fakes for the Twitch, EventSub and OBS sides
"""
from __future__ import annotations

import json
from pathlib import Path
from contextlib import asynccontextmanager
from typing import Any

import pytest

from redeemplayer.settings import Settings
from redeemplayer.constants import CONFIG_PATH_ENV


class FakeResponse:
    """Stands in for an already-read `aiohttp.ClientResponse`"""

    def __init__(self, status: int = 200, body: Any = None):
        self.status = status
        self._body = body

    @property
    def content_type(self) -> str:
        if isinstance(self._body, str):
            return "text/plain"
        return "application/json"

    async def json(self) -> Any:
        return self._body

    async def text(self) -> str:
        if isinstance(self._body, str):
            return self._body
        return json.dumps(self._body)


class FakeRequest:
    """Replaces `Twitch.request`, recording every call and answering with the given responses"""

    def __init__(self, *responses: FakeResponse):
        self.responses = list(responses)
        self.calls: list[tuple[str, Any, dict[str, Any]]] = []

    @asynccontextmanager
    async def __call__(self, method: str, url: Any, **kwargs: Any):
        self.calls.append((method, url, kwargs))
        yield self.responses.pop(0)


@pytest.fixture
def config_data(tmp_path: Path) -> dict[str, Any]:
    """Minimal valid config, with every path inside the test's temporary directory"""
    return {
        "twitchClientId": "client-id",
        "twitchClientSecret": "client-secret",
        "broadcasterLogin": "streamer",
        "tokensFile": str(tmp_path / "tokens.json"),
        "clipsDir": str(tmp_path / "clips"),
        "obsAddress": "ws://127.0.0.1:4455",
        "obsPassword": "hunter2",
        "cooldownMs": 1500,
    }


@pytest.fixture
def make_settings(tmp_path: Path, config_data: dict[str, Any]):
    """Writes the config file (with optional overrides) and loads Settings from it"""
    def factory(
        args: Any = None, environ: dict[str, str] | None = None, **overrides: Any
    ) -> Settings:
        config_path = tmp_path / "runtime.config.json"
        config_path.write_text(json.dumps({**config_data, **overrides}), encoding="utf8")
        env = {CONFIG_PATH_ENV: str(config_path)}
        if environ:
            env.update(environ)
        return Settings(args, environ=env)
    return factory


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def dry_settings(make_settings) -> Settings:
    return make_settings(dryRun=True)


@pytest.fixture
def clips_dir(tmp_path: Path) -> Path:
    path = tmp_path / "clips"
    path.mkdir()
    return path
