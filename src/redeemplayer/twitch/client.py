"""
Main Twitch client class for Redeem Player.

This module contains the main Twitch client class that orchestrates
the authentication, Helix API calls, the EventSub websocket and clip playback.
"""

from __future__ import annotations

import asyncio
import logging
from collections import abc
from contextlib import asynccontextmanager
from typing import Any, TYPE_CHECKING

import aiohttp
from yarl import URL

from .auth import AuthState
from .websocket import EventSubWebsocket
from ..clips import ClipResolver
from ..dispatch import Dispatcher
from ..playback import create_controller
from ..utils import ExponentialBackoff
from ..exceptions import (
    RedeemException,
    SubscriptionError,
    ControllerConnectionError,
)
from ..constants import (
    HELIX_URL,
    LOGGER_NAME,
    REDEMPTION_EVENT_TYPE,
    REDEMPTION_EVENT_VERSION,
)

if TYPE_CHECKING:
    from ..settings import Settings
    from ..playback import MediaController
    from ..constants import JsonType


logger = logging.getLogger(LOGGER_NAME)


class Twitch:
    """Main Twitch client class."""

    def __init__(self, settings: Settings, *, controller: MediaController | None = None):
        self.settings: Settings = settings
        # Session and auth
        self._session: aiohttp.ClientSession | None = None
        self._auth_state: AuthState = AuthState(self)
        # Playback
        self.resolver = ClipResolver.from_settings(settings)
        if controller is None:
            controller = create_controller(settings)
        self.controller: MediaController = controller
        self.dispatcher = Dispatcher(self.resolver, self.controller, settings.cooldown)
        # Websocket
        self.websocket = EventSubWebsocket(self)
        self.broadcaster_id: str | None = None
        self._stop = asyncio.Event()

    @property
    def auth(self) -> AuthState:
        return self._auth_state

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=10)
            timeout = aiohttp.ClientTimeout(total=30)
            self._session = aiohttp.ClientSession(connector=connector, timeout=timeout)
        return self._session

    async def shutdown(self) -> None:
        """Shutdown the client and cleanup resources."""
        await self.controller.close()
        if self._session is not None:
            await self._session.close()

    def close(self):
        """Request the client to stop."""
        self._stop.set()

    @property
    def close_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop

    @asynccontextmanager
    async def request(
        self, method: str, url: URL | str, *, attempts: int = 3, **kwargs: Any
    ) -> abc.AsyncIterator[aiohttp.ClientResponse]:
        session = await self.get_session()
        method = method.upper()
        # kwargs aren't logged, since they carry secrets
        logger.debug(f"Request: ({method=}, {url=})")
        backoff = ExponentialBackoff(maximum=30)
        for attempt in range(1, attempts + 1):
            delay = next(backoff)
            try:
                response = await session.request(method, url, **kwargs)
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as exc:
                if attempt >= attempts:
                    raise
                logger.warning(f"Request to {url} failed ({exc!r}), retrying in {round(delay)}s")
            else:
                logger.debug(f"Response: {response.status}: {response}")
                if response.status < 500 or attempt >= attempts:
                    try:
                        # pre-read the response to avoid getting errors outside of the context manager
                        await response.read()
                        yield response
                    finally:
                        response.release()
                    return
                response.release()
                logger.warning(
                    f"Request to {url} returned status {response.status}, "
                    f"retrying in {round(delay)}s"
                )
            await asyncio.sleep(delay)

    async def get_access_token(self) -> str:
        return await self._auth_state.get_access_token()

    async def helix_request(
        self, method: str, path: str, access_token: str, **kwargs: Any
    ) -> tuple[int, JsonType | str]:
        url = HELIX_URL.join(URL(path))
        headers = self._auth_state.headers(access_token)
        async with self.request(method, url, headers=headers, **kwargs) as response:
            status = response.status
            if response.content_type == "application/json":
                return status, await response.json()
            return status, await response.text()

    async def get_broadcaster_id(self, access_token: str) -> str:
        login: str = self.settings.broadcaster_login
        status, response = await self.helix_request(
            "GET", "users", access_token, params={"login": login}
        )
        if status != 200 or not isinstance(response, dict):
            raise RedeemException(f"Twitch API {status}: {response}")
        users: list[JsonType] = response.get("data") or []
        if not users:
            raise RedeemException(f"No Twitch user found for login {login}")
        return str(users[0]["id"])

    async def create_subscription(
        self, access_token: str, session_id: str, broadcaster_id: str
    ) -> None:
        payload: JsonType = {
            "type": REDEMPTION_EVENT_TYPE,
            "version": REDEMPTION_EVENT_VERSION,
            "condition": {"broadcaster_user_id": broadcaster_id},
            "transport": {"method": "websocket", "session_id": session_id},
        }
        status, response = await self.helix_request(
            "POST", "eventsub/subscriptions", access_token, json=payload
        )
        if not 200 <= status < 300:
            raise SubscriptionError(status, str(response))

    async def run(self) -> None:
        """
        Main method that runs the whole client.

        Here, we manage several things, specifically:
        • Making sure the clips directory exists and the controller is reachable
        • Obtaining a valid access token and the broadcaster's user ID
        • Running the EventSub websocket until we're asked to stop
        """
        self.resolver.ensure_dir()
        try:
            await self.controller.init()
        except ControllerConnectionError as exc:
            logger.warning(f"Initial OBS connection failed; will retry when redeems arrive. {exc}")
        # an AuthError here is fatal - nothing can be done without the operator re-authorizing
        access_token = await self.get_access_token()
        self.broadcaster_id = await self.get_broadcaster_id(access_token)
        logger.info(f"Broadcaster user id: {self.broadcaster_id}")
        await self.websocket.run(self._stop)

    async def simulate(self, reward_title: str) -> str | None:
        clip_path = self.resolver.resolve(reward_title)
        if clip_path is None:
            return None
        await self.controller.init()
        await self.controller.play_media(clip_path)
        return str(clip_path)
