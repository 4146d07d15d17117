"""
Tests for the application entry (app.py) and shared helpers (utils.py)
"""
from __future__ import annotations

import json
import asyncio
import logging
from pathlib import Path

import pytest

from redeemplayer.app import main
from redeemplayer.settings import ENV_OVERRIDES
from redeemplayer.constants import CONFIG_PATH_ENV, LOGGER_NAME, WS_LOGGER_NAME
from redeemplayer.utils import ExponentialBackoff, json_load, json_save, task_wrapper


@pytest.fixture(autouse=True)
def restore_loggers():
    logger = logging.getLogger(LOGGER_NAME)
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logging.getLogger(WS_LOGGER_NAME).setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (CONFIG_PATH_ENV, *ENV_OVERRIDES):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_path(make_settings, tmp_path: Path) -> Path:
    make_settings(dryRun=True)
    return tmp_path / "runtime.config.json"


class TestMain:

    @pytest.mark.asyncio
    async def test_simulate(self, config_path: Path, clips_dir: Path):
        (clips_dir / "tasty.mp4").touch()
        assert await main(["--config", str(config_path), "simulate", "Play: Tasty"]) == 0

    @pytest.mark.asyncio
    async def test_simulate_without_clip(self, config_path: Path, clips_dir: Path):
        assert await main(["--config", str(config_path), "simulate", "Play: Missing"]) == 1

    @pytest.mark.asyncio
    async def test_run_without_tokens(self, config_path: Path):
        assert await main(["--config", str(config_path), "run"]) == 1

    @pytest.mark.asyncio
    async def test_invalid_config(self, tmp_path: Path, capsys):
        config_path = tmp_path / "broken.json"
        config_path.write_text(json.dumps({"twitchClientId": "x"}), encoding="utf8")
        assert await main(["--config", str(config_path), "run"]) == 1
        assert "twitch_client_secret is required" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_logging_levels(self, config_path: Path, clips_dir: Path):
        await main(["-v", "--debug-ws", "--config", str(config_path), "simulate", "Play: x"])
        assert logging.getLogger(LOGGER_NAME).level == logging.INFO - 1
        assert logging.getLogger(WS_LOGGER_NAME).level == logging.DEBUG


class TestUtils:

    def test_json_save_creates_directories(self, tmp_path: Path):
        path = tmp_path / "a" / "b" / "data.json"
        json_save(path, {"b": 1, "a": 2}, sort=True)
        assert json.loads(path.read_text(encoding="utf8")) == {"a": 2, "b": 1}
        # only the target file is left behind
        assert [p.name for p in path.parent.iterdir()] == ["data.json"]

    def test_json_load_merges_defaults(self, tmp_path: Path):
        path = tmp_path / "data.json"
        path.write_text('{"a": 1}', encoding="utf8")
        assert json_load(path, {"a": 0, "b": 2}) == {"a": 1, "b": 2}
        assert json_load(tmp_path / "missing.json", {"b": 2}) == {"b": 2}

    def test_json_load_rejects_non_objects(self, tmp_path: Path):
        path = tmp_path / "data.json"
        path.write_text("[1]", encoding="utf8")
        with pytest.raises(ValueError):
            json_load(path, {})

    def test_exponential_backoff(self):
        backoff = ExponentialBackoff(variance=0, maximum=4)
        assert [next(backoff) for _ in range(5)] == [0.5, 1, 2, 4, 4]
        backoff.reset()
        assert next(backoff) == 0.5

    @pytest.mark.asyncio
    async def test_task_wrapper_logs_exceptions(self, caplog):
        async def explode() -> None:
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            assert await task_wrapper(explode)() is None
        assert "Exception in" in caplog.text
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_task_wrapper_passes_cancellation(self):
        async def wait_forever() -> None:
            await asyncio.Event().wait()

        task = asyncio.create_task(task_wrapper(wait_forever)())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
