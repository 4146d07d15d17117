from __future__ import annotations

import sys
import logging
from enum import Enum, auto
from pathlib import Path
from datetime import timedelta
from typing import Any, Dict, Final, TypeAlias

from yarl import URL


# True if we're running from a built EXE (or a Linux AppImage), False inside a dev build
IS_PACKAGED = hasattr(sys, "_MEIPASS") or bool(getattr(sys, "frozen", False))
# Development paths
SELF_PATH = Path(sys.argv[0]).resolve()
WORKING_DIR = Path.cwd()
EXECUTABLE_DIR = Path(sys.executable).resolve().parent if IS_PACKAGED else SELF_PATH.parent
# Config and data paths
CONFIG_PATH_ENV: Final[str] = "PDR_CONFIG_PATH"
DEFAULT_CONFIG_PATH = WORKING_DIR.joinpath("config", "runtime.config.json")
EXECUTABLE_CONFIG_PATH = EXECUTABLE_DIR.joinpath("runtime.config.json")
LOG_PATH = WORKING_DIR.joinpath("log.txt")
# Typing
JsonType: TypeAlias = Dict[str, Any]
# Logging
CALL = logging.INFO - 1
logging.addLevelName(CALL, "CALL")
FILE_FORMATTER = logging.Formatter(
    "{asctime}.{msecs:03.0f}:\t{levelname:>7}:\t{message}",
    style='{',
    datefmt="%Y-%m-%d %H:%M:%S",
)
OUTPUT_FORMATTER = logging.Formatter("{asctime}: {message}", style='{', datefmt="%X")
LOGGER_NAME: Final[str] = "RedeemPlayer"
WS_LOGGER_NAME: Final[str] = f"{LOGGER_NAME}.websocket"
OBS_LOGGER_NAME: Final[str] = f"{LOGGER_NAME}.obs"
# Twitch endpoints
OAUTH_AUTHORIZE_URL = URL("https://id.twitch.tv/oauth2/authorize")
OAUTH_TOKEN_URL = URL("https://id.twitch.tv/oauth2/token")
HELIX_URL = URL("https://api.twitch.tv/helix/")
EVENTSUB_URL: Final[str] = "wss://eventsub.wss.twitch.tv/ws"
REDEMPTION_EVENT_TYPE: Final[str] = "channel.channel_points_custom_reward_redemption.add"
REDEMPTION_EVENT_VERSION: Final[str] = "1"
# Intervals and delays
TOKEN_REFRESH_MARGIN = timedelta(minutes=1)
RECONNECT_DELAY = timedelta(seconds=2)
# extra time allowed past the server's keepalive timeout before the connection is considered dead
KEEPALIVE_GRACE = timedelta(seconds=5)
# OBS
OBS_CONNECT_ATTEMPTS: Final[int] = 5
OBS_BACKOFF_STEP = timedelta(seconds=2)
OBS_BACKOFF_MAXIMUM = timedelta(seconds=5)
OBS_REQUEST_TIMEOUT: Final[int] = 5
OBS_RESTART_ACTION: Final[str] = "OBS_WEBSOCKET_MEDIA_INPUT_ACTION_RESTART"


class SessionState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    AWAITING_WELCOME = auto()
    SUBSCRIBED = auto()
    CLOSING = auto()
