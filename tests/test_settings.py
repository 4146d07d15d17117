"""
Tests for the runtime configuration (settings.py) and the command line (cli.py)
"""
from __future__ import annotations

import logging
from pathlib import Path
from datetime import timedelta

import pytest

from redeemplayer.cli import parse_arguments
from redeemplayer.constants import CALL, CONFIG_PATH_ENV
from redeemplayer.exceptions import ConfigError
from redeemplayer.settings import Settings, snake_case, candidate_config_paths


class TestSettingsLoading:
    """Loading the config file, filling in defaults and applying the environment"""

    def test_camel_case_keys_and_defaults(self, settings: Settings, tmp_path: Path):
        assert settings.twitch_client_id == "client-id"
        assert settings.broadcaster_login == "streamer"
        assert settings.obs_media_source_name == "RewardClip"
        assert settings.title_prefix == "Play:"
        assert settings.extensions == [".mp4", ".webm", ".mov", ".mkv"]
        assert settings.port == 3000
        assert settings.dry_run is False
        assert settings.cooldown == timedelta(milliseconds=1500)
        assert settings.tokens_path == (tmp_path / "tokens.json").resolve()
        assert settings.obs_url.host == "127.0.0.1"
        assert settings.obs_url.port == 4455

    def test_relative_paths_are_resolved(self, make_settings, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        settings = make_settings(tokensFile="./data/tokens.json", clipsDir="clips")
        assert settings.tokens_path == (tmp_path / "data" / "tokens.json").resolve()
        assert settings.clips_path.is_absolute()

    def test_environment_overrides(self, make_settings):
        settings = make_settings(
            environ={
                "COOLDOWN_MS": "250",
                "DRY_RUN": "true",
                "EXTENSIONS": ".mp4, .avi",
                "OBS_MEDIA_SOURCE_NAME": "Clips",
            }
        )
        assert settings.cooldown == timedelta(milliseconds=250)
        assert settings.dry_run is True
        assert settings.extensions == [".mp4", ".avi"]
        assert settings.obs_media_source_name == "Clips"

    def test_dry_run_env_only_accepts_true_values(self, make_settings):
        assert make_settings(environ={"DRY_RUN": "1"}).dry_run is True
        assert make_settings(environ={"DRY_RUN": "no"}).dry_run is False

    def test_settings_are_read_only(self, settings: Settings):
        with pytest.raises(TypeError):
            settings.port = 1234

    def test_snake_case(self):
        assert snake_case("obsMediaSourceName") == "obs_media_source_name"
        assert snake_case("port") == "port"
        assert snake_case("dry_run") == "dry_run"


class TestSettingsValidation:
    """Invalid configs are rejected with a ConfigError"""

    def test_missing_required_field(self, make_settings):
        with pytest.raises(ConfigError, match="twitch_client_id is required"):
            make_settings(twitchClientId='')

    def test_extension_without_dot(self, make_settings):
        with pytest.raises(ConfigError, match="has to start with a dot"):
            make_settings(extensions=[".mp4", "webm"])

    def test_negative_cooldown(self, make_settings):
        with pytest.raises(ConfigError, match="cooldown_ms"):
            make_settings(cooldownMs=-1)

    def test_non_positive_port(self, make_settings):
        with pytest.raises(ConfigError, match="port"):
            make_settings(port=0)

    def test_wrong_type(self, make_settings):
        with pytest.raises(ConfigError, match="port has to be of type int"):
            make_settings(port="3000")

    def test_invalid_number_in_environment(self, make_settings):
        with pytest.raises(ConfigError, match="COOLDOWN_MS"):
            make_settings(environ={"COOLDOWN_MS": "soon"})

    def test_obs_address_without_host(self, make_settings):
        with pytest.raises(ConfigError, match="obs_address"):
            make_settings(obsAddress="not an address")

    def test_invalid_json(self, tmp_path: Path):
        config_path = tmp_path / "runtime.config.json"
        config_path.write_text("{not json", encoding="utf8")
        with pytest.raises(ConfigError, match="Unable to parse"):
            Settings(environ={CONFIG_PATH_ENV: str(config_path)})

    def test_missing_config_file(self, tmp_path: Path):
        missing = tmp_path / "missing.json"
        with pytest.raises(ConfigError, match="Missing config file"):
            Settings(environ={CONFIG_PATH_ENV: str(missing)})


class TestConfigPath:
    """Picking the config file location"""

    def test_explicit_path_wins(self, tmp_path: Path):
        explicit = tmp_path / "a.json"
        environ = {CONFIG_PATH_ENV: str(tmp_path / "b.json")}
        assert candidate_config_paths(explicit, environ) == [explicit.resolve()]

    def test_environment_path(self, tmp_path: Path):
        environ = {CONFIG_PATH_ENV: str(tmp_path / "b.json")}
        assert candidate_config_paths(None, environ) == [(tmp_path / "b.json").resolve()]

    def test_default_candidates(self):
        candidates = candidate_config_paths(None, {})
        assert candidates[0].parts[-2:] == ("config", "runtime.config.json")
        assert all(candidate.name == "runtime.config.json" for candidate in candidates)

    def test_config_argument(self, make_settings, tmp_path: Path):
        # writes the config file first
        make_settings()
        config_path = tmp_path / "runtime.config.json"
        args = parse_arguments(["--config", str(config_path), "run"])
        settings = Settings(args, environ={})
        assert settings.config_path == config_path.resolve()
        assert settings.logging_level == logging.INFO


class TestCommandLine:
    """Argument parsing and the logging levels derived from it"""

    def test_default_level_is_info(self):
        args = parse_arguments(["run"])
        assert args.command == "run"
        assert args.logging_level == logging.INFO
        assert args.debug_ws == logging.NOTSET
        assert args.config is None
        assert args.log is False

    def test_verbosity(self):
        assert parse_arguments(["-v", "run"]).logging_level == CALL
        args = parse_arguments(["-vv", "run"])
        assert args.logging_level == logging.DEBUG
        # keep the raw frames out of the main debug log
        assert args.debug_ws == logging.INFO
        assert parse_arguments(["-vvvvvv", "run"]).logging_level == logging.DEBUG

    def test_quiet(self):
        assert parse_arguments(["-q", "run"]).logging_level == logging.WARNING
        assert parse_arguments(["-qqq", "run"]).logging_level == logging.ERROR

    def test_debug_ws(self):
        assert parse_arguments(["--debug-ws", "run"]).debug_ws == logging.DEBUG

    def test_simulate_title(self):
        args = parse_arguments(["--log", "simulate", "Play: Tasty Clip"])
        assert args.command == "simulate"
        assert args.reward_title == "Play: Tasty Clip"
        assert args.log is True

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            parse_arguments([])

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            parse_arguments(["dance"])
