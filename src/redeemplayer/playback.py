"""
Playback controllers for Redeem Player.

This module contains the two controllers a clip can be played with:
- ObsController: restarts a media source in OBS, over the OBS WebSocket v5 protocol
- DryRunController: only logs what would've been played

`obsws_python` clients are blocking, so every call to them runs in the default executor.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from functools import partial
from contextlib import suppress
from datetime import timedelta
from typing import Any, Protocol, TYPE_CHECKING

import obsws_python as obs

from .exceptions import ControllerConnectionError, PlaybackError
from .constants import (
    OBS_LOGGER_NAME,
    OBS_RESTART_ACTION,
    OBS_BACKOFF_STEP,
    OBS_BACKOFF_MAXIMUM,
    OBS_CONNECT_ATTEMPTS,
    OBS_REQUEST_TIMEOUT,
)

if TYPE_CHECKING:
    from .settings import Settings


obs_logger = logging.getLogger(OBS_LOGGER_NAME)
DEFAULT_OBS_PORT = 4455


class MediaController(Protocol):
    async def init(self) -> None:
        ...

    async def play_media(self, path: Path) -> None:
        ...

    async def close(self) -> None:
        ...


class ObsController:
    def __init__(
        self,
        settings: Settings,
        *,
        attempts: int = OBS_CONNECT_ATTEMPTS,
        backoff_step: timedelta = OBS_BACKOFF_STEP,
        backoff_maximum: timedelta = OBS_BACKOFF_MAXIMUM,
    ):
        url = settings.obs_url
        self.address: str = str(url)
        self.source_name: str = settings.obs_media_source_name
        self._host: str = url.host or "127.0.0.1"
        self._port: int = url.port or DEFAULT_OBS_PORT
        self._password: str | None = settings.obs_password or None
        self._attempts: int = attempts
        self._backoff_step: float = backoff_step.total_seconds()
        self._backoff_maximum: float = backoff_maximum.total_seconds()
        self._client: obs.ReqClient | None = None
        self._events: obs.EventClient | None = None
        # the one connect sequence in progress, shared by everyone waiting for it
        self._connecting: asyncio.Task[None] | None = None
        # the executor call opening the clients, it can't be cancelled once it runs
        self._opening: asyncio.Future[tuple[obs.ReqClient, obs.EventClient | None]] | None = None
        self._closed: bool = False

    @property
    def connected(self) -> bool:
        if self._client is None:
            return False
        # the event client's worker thread ends when the link drops, with no callback
        return self._events is None or self._events.worker.is_alive()

    def backoff_delay(self, attempt: int) -> float:
        return min(self._backoff_step * attempt, self._backoff_maximum)

    async def init(self) -> None:
        await self.ensure_connected()

    async def ensure_connected(self) -> None:
        if self.connected:
            return
        # drop the clients of a link that died silently
        self.handle_disconnect()
        task = self._connecting
        if task is None:
            task = self._connecting = asyncio.create_task(self._connect_with_retry())
            task.add_done_callback(self._connect_done)
        # shield, so that a cancelled caller doesn't cancel the attempt for everyone else
        await asyncio.shield(task)

    def _connect_done(self, task: asyncio.Task[None]) -> None:
        if self._connecting is task:
            self._connecting = None

    async def _connect_with_retry(self) -> None:
        loop = asyncio.get_running_loop()
        last_error: BaseException | None = None
        for attempt in range(1, self._attempts + 1):
            self._opening = loop.run_in_executor(None, self._open_clients, loop)
            try:
                self._client, self._events = await self._opening
            except Exception as exc:
                last_error = exc
            else:
                obs_logger.info(f"Connected to OBS at {self.address}")
                return
            finally:
                self._opening = None
            if attempt >= self._attempts or self._closed:
                break
            delay = self.backoff_delay(attempt)
            obs_logger.warning(
                f"OBS connection attempt {attempt} failed ({last_error}). "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)
        raise ControllerConnectionError(
            f"Unable to connect to OBS at {self.address} after {self._attempts} attempts: "
            f"{last_error}"
        ) from last_error

    def _open_clients(
        self, loop: asyncio.AbstractEventLoop
    ) -> tuple[obs.ReqClient, obs.EventClient | None]:
        client = obs.ReqClient(
            host=self._host, port=self._port, password=self._password, timeout=OBS_REQUEST_TIMEOUT
        )
        try:
            events = obs.EventClient(
                host=self._host,
                port=self._port,
                password=self._password,
                timeout=OBS_REQUEST_TIMEOUT,
            )
        except Exception:
            obs_logger.warning(
                "OBS event client unavailable, a closed connection will only be noticed "
                "once a playback fails",
                exc_info=True,
            )
            return client, None

        # called from the event client's thread
        def on_exit_started(data: Any) -> None:
            loop.call_soon_threadsafe(self.handle_disconnect)

        events.callback.register(on_exit_started)
        return client, events

    @staticmethod
    def _close_clients(client: obs.ReqClient | None, events: obs.EventClient | None) -> None:
        for closable in (events, client):
            if closable is None:
                continue
            try:
                closable.disconnect()
            except Exception as exc:
                obs_logger.debug(f"OBS disconnect warning (non-critical): {exc}")

    def _discard_clients(self) -> None:
        client, events = self._client, self._events
        self._client = self._events = None
        if client is not None or events is not None:
            asyncio.get_running_loop().run_in_executor(None, self._close_clients, client, events)

    def handle_disconnect(self) -> None:
        if self._client is None:
            return
        obs_logger.warning("OBS connection closed. Will retry on next playback.")
        self._discard_clients()

    async def play_media(self, path: Path) -> None:
        await self.ensure_connected()
        client = self._client
        if client is None:
            # a disconnect got handled between the connect finishing and us resuming
            raise PlaybackError(f"OBS connection closed before playback of {path}")
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                partial(
                    client.set_input_settings,
                    name=self.source_name,
                    settings={"local_file": str(path)},
                    overlay=True,
                ),
            )
            await loop.run_in_executor(
                None,
                partial(
                    client.trigger_media_input_action,
                    name=self.source_name,
                    action=OBS_RESTART_ACTION,
                ),
            )
        except Exception as exc:
            # the connection may be dead, make the next playback reconnect
            self._discard_clients()
            raise PlaybackError(f"OBS playback of {path} failed: {exc}") from exc
        obs_logger.info(f"OBS playback triggered for {path}")

    async def close(self) -> None:
        self._closed = True
        task = self._connecting
        if task is not None:
            # a running executor call can't be stopped, so let it finish
            # and close whatever clients it opened below
            if self._opening is None:
                task.cancel()
            with suppress(asyncio.CancelledError, ControllerConnectionError):
                await task
        client, events = self._client, self._events
        self._client = self._events = None
        await asyncio.get_running_loop().run_in_executor(None, self._close_clients, client, events)


class DryRunController:
    def __init__(self, settings: Settings):
        self.source_name: str = settings.obs_media_source_name

    async def init(self) -> None:
        obs_logger.info("Dry-run mode enabled. OBS interactions are skipped.")

    async def play_media(self, path: Path) -> None:
        obs_logger.info(f"[DRY-RUN] Would play {path} on {self.source_name}")

    async def close(self) -> None:
        pass


def create_controller(settings: Settings) -> MediaController:
    if settings.dry_run:
        return DryRunController(settings)
    return ObsController(settings)
