from __future__ import annotations

import os
import re
from pathlib import Path
from datetime import timedelta
from collections import abc
from typing import Any, NoReturn, TypedDict, TYPE_CHECKING

from yarl import URL

from .utils import json_load
from .exceptions import ConfigError
from .constants import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH, EXECUTABLE_CONFIG_PATH

if TYPE_CHECKING:
    from .cli import ParsedArgs


class SettingsFile(TypedDict):
    twitch_client_id: str
    twitch_client_secret: str
    broadcaster_login: str
    redirect_uri: str
    port: int
    scopes: list[str]
    tokens_file: str
    obs_address: str
    obs_password: str
    obs_media_source_name: str
    clips_dir: str
    title_prefix: str
    extensions: list[str]
    cooldown_ms: int
    dry_run: bool


default_settings: SettingsFile = {
    "twitch_client_id": '',
    "twitch_client_secret": '',
    "broadcaster_login": '',
    "redirect_uri": "http://localhost:3000/callback",
    "port": 3000,
    "scopes": ["channel:read:redemptions"],
    "tokens_file": "./tokens.json",
    "obs_address": "ws://127.0.0.1:4455",
    "obs_password": '',
    "obs_media_source_name": "RewardClip",
    "clips_dir": "./clips",
    "title_prefix": "Play:",
    "extensions": [".mp4", ".webm", ".mov", ".mkv"],
    "cooldown_ms": 1500,
    "dry_run": False,
}
# environment variable -> settings key
ENV_OVERRIDES: dict[str, str] = {
    "TWITCH_CLIENT_ID": "twitch_client_id",
    "TWITCH_CLIENT_SECRET": "twitch_client_secret",
    "BROADCASTER_LOGIN": "broadcaster_login",
    "REDIRECT_URI": "redirect_uri",
    "PORT": "port",
    "SCOPES": "scopes",
    "TOKENS_FILE": "tokens_file",
    "OBS_ADDRESS": "obs_address",
    "OBS_PASSWORD": "obs_password",
    "OBS_MEDIA_SOURCE_NAME": "obs_media_source_name",
    "CLIPS_DIR": "clips_dir",
    "TITLE_PREFIX": "title_prefix",
    "EXTENSIONS": "extensions",
    "COOLDOWN_MS": "cooldown_ms",
    "DRY_RUN": "dry_run",
}
REQUIRED = ("twitch_client_id", "twitch_client_secret", "broadcaster_login")
PATH_KEYS = ("tokens_file", "clips_dir")


def snake_case(key: str) -> str:
    # the config file historically uses camelCase keys, like "obsMediaSourceName"
    return re.sub(r"(?<!^)(?=[A-Z])", '_', key).lower()


def parse_list(value: str) -> list[str]:
    return [part.strip() for part in value.split(',') if part.strip()]


def parse_bool(value: str) -> bool:
    return value == '1' or value.lower() == "true"


def candidate_config_paths(
    explicit: Path | None = None, environ: abc.Mapping[str, str] | None = None
) -> list[Path]:
    if environ is None:
        environ = os.environ
    if explicit is not None:
        return [explicit.resolve()]
    if env_path := environ.get(CONFIG_PATH_ENV):
        return [Path(env_path).resolve()]
    candidates = [DEFAULT_CONFIG_PATH]
    if EXECUTABLE_CONFIG_PATH not in candidates:
        candidates.append(EXECUTABLE_CONFIG_PATH)
    return candidates


def find_config_path(
    explicit: Path | None = None, environ: abc.Mapping[str, str] | None = None
) -> Path:
    candidates = candidate_config_paths(explicit, environ)
    for candidate in candidates:
        if candidate.exists():
            return candidate
    pretty = '\n'.join(f"- {candidate}" for candidate in candidates)
    raise ConfigError(
        "Missing config file. Place runtime.config.json next to the executable "
        f"or set {CONFIG_PATH_ENV}. Tried:\n{pretty}"
    )


class Settings:
    # from args
    log: bool
    config: Path | None
    # args properties
    debug_ws: int
    logging_level: int
    # from settings file
    twitch_client_id: str
    twitch_client_secret: str
    broadcaster_login: str
    redirect_uri: str
    port: int
    scopes: list[str]
    tokens_file: str
    obs_address: str
    obs_password: str
    obs_media_source_name: str
    clips_dir: str
    title_prefix: str
    extensions: list[str]
    cooldown_ms: int
    dry_run: bool

    PASSTHROUGH = ("_settings", "_args", "config_path")

    def __init__(
        self,
        args: ParsedArgs | None = None,
        *,
        environ: abc.Mapping[str, str] | None = None,
    ):
        if environ is None:
            environ = os.environ
        self._args: ParsedArgs | None = args
        self.config_path: Path = find_config_path(getattr(args, "config", None), environ)
        try:
            loaded: dict[str, Any] = json_load(self.config_path, {})
        except ValueError as exc:
            # json.JSONDecodeError is a subclass of ValueError
            raise ConfigError(f"Unable to parse the config file at {self.config_path}") from exc
        self._settings: SettingsFile = normalize_settings(loaded)
        self.__get_settings_from_env__(environ)
        self._validate()
        for key in PATH_KEYS:
            self._settings[key] = str(Path(self._settings[key]).resolve())  # type: ignore

    def __get_settings_from_env__(self, environ: abc.Mapping[str, str]):
        for env_name, key in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if not value:
                continue
            default = default_settings[key]  # type: ignore[literal-required]
            if isinstance(default, bool):
                self._settings[key] = parse_bool(value)  # type: ignore[literal-required]
            elif isinstance(default, int):
                try:
                    self._settings[key] = int(value)  # type: ignore[literal-required]
                except ValueError:
                    raise ConfigError(f"{env_name} has to be a whole number, got: {value}")
            elif isinstance(default, list):
                if parsed := parse_list(value):
                    self._settings[key] = parsed  # type: ignore[literal-required]
            else:
                self._settings[key] = value  # type: ignore[literal-required]

    def _validate(self) -> None:
        errors: list[str] = []
        for key, default in default_settings.items():
            value = self._settings[key]  # type: ignore[literal-required]
            if not isinstance(value, type(default)):
                errors.append(f"{key} has to be of type {type(default).__name__}")
        if errors:
            # the remaining checks rely on the types being right
            self._raise_invalid(errors)
        for key in REQUIRED:
            if not self._settings[key]:  # type: ignore[literal-required]
                errors.append(f"{key} is required")
        if self._settings["port"] <= 0:
            errors.append("port has to be a positive number")
        if self._settings["cooldown_ms"] < 0:
            errors.append("cooldown_ms can't be negative")
        if not self._settings["scopes"]:
            errors.append("scopes can't be empty")
        if not self._settings["obs_media_source_name"]:
            errors.append("obs_media_source_name is required")
        if not self._settings["title_prefix"].strip():
            errors.append("title_prefix is required")
        for extension in self._settings["extensions"]:
            if not isinstance(extension, str) or not extension.startswith('.'):
                errors.append(f"extension {extension!r} has to start with a dot")
        if URL(self._settings["obs_address"]).host is None:
            errors.append(f"obs_address {self._settings['obs_address']!r} is missing a host")
        if errors:
            self._raise_invalid(errors)

    def _raise_invalid(self, errors: list[str]) -> NoReturn:
        raise ConfigError(
            f"Invalid config file at {self.config_path}:\n"
            + '\n'.join(f"- {error}" for error in errors)
        )

    # default logic of reading settings is to check args first, then the settings file
    def __getattr__(self, name: str, /) -> Any:
        if name in self.PASSTHROUGH:
            # passthrough
            return getattr(super(), name)
        elif (value := getattr(self._args, name, None)) is not None:
            return value
        elif name in self._settings:
            return self._settings[name]  # type: ignore[literal-required]
        return getattr(super(), name)

    def __setattr__(self, name: str, value: Any, /) -> None:
        if name in self.PASSTHROUGH:
            # passthrough
            return super().__setattr__(name, value)
        raise TypeError(f"{name} is read-only")

    def __delattr__(self, name: str, /) -> None:
        raise RuntimeError("settings can't be deleted")

    @property
    def cooldown(self) -> timedelta:
        return timedelta(milliseconds=self.cooldown_ms)

    @property
    def tokens_path(self) -> Path:
        return Path(self.tokens_file)

    @property
    def clips_path(self) -> Path:
        return Path(self.clips_dir)

    @property
    def obs_url(self) -> URL:
        return URL(self.obs_address)


def normalize_settings(loaded: abc.Mapping[str, Any]) -> SettingsFile:
    """
    Normalizes the keys of a loaded config file, and fills in the missing ones with defaults.
    """
    settings: dict[str, Any] = dict(default_settings)
    for key, value in loaded.items():
        settings[snake_case(key)] = value
    return settings  # type: ignore[return-value]
