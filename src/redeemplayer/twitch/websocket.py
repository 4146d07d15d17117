"""
WebSocket functionality for Redeem Player.

This module handles the EventSub websocket session, including:
- Connecting and reconnecting, to the server-supplied URL when one is offered
- Waiting for the welcome message and subscribing to channel points redemptions
- Routing notifications to the dispatcher
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING

import aiohttp

from .messages import Welcome, Keepalive, Reconnect, Notification, parse_frame
from ..utils import task_wrapper, format_traceback
from ..exceptions import (
    AuthError,
    ProtocolError,
    ProtocolErrorKind,
    SubscriptionError,
    WebsocketClosed,
)
from ..constants import (
    CALL,
    EVENTSUB_URL,
    KEEPALIVE_GRACE,
    LOGGER_NAME,
    RECONNECT_DELAY,
    WS_LOGGER_NAME,
    SessionState,
)

if TYPE_CHECKING:
    from datetime import timedelta

    from .client import Twitch
    from .messages import Frame


WSMsgType = aiohttp.WSMsgType
logger = logging.getLogger(LOGGER_NAME)
ws_logger = logging.getLogger(WS_LOGGER_NAME)


class EventSubWebsocket:
    def __init__(
        self,
        twitch: Twitch,
        *,
        url: str = EVENTSUB_URL,
        reconnect_delay: timedelta = RECONNECT_DELAY,
    ):
        self._twitch: Twitch = twitch
        self.default_url: str = url
        # where the next connection attempt goes to
        self.url: str = url
        self._reconnect_delay: float = reconnect_delay.total_seconds()
        self.state: SessionState = SessionState.DISCONNECTED
        # per-connection state, reset on every connection attempt
        self.session_id: str | None = None
        self.subscribed: bool = False
        self._receive_timeout: float | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        # set after the first subscription succeeds, past that point nothing is fatal
        self._established: bool = False
        # dispatch tasks, kept so they don't get garbage collected mid-way
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def run(self, stop: asyncio.Event) -> None:
        """
        Connect/Reconnect loop. Runs until `stop` is set.
        """
        stop_task = asyncio.create_task(self._close_on_stop(stop))
        try:
            while not stop.is_set():
                self.url = await self._run_session(self.url, stop)
                if stop.is_set():
                    break
                ws_logger.info(f"Reconnecting to EventSub in {self._reconnect_delay:g} seconds...")
                with suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(stop.wait(), timeout=self._reconnect_delay)
        finally:
            stop_task.cancel()
            self.state = SessionState.DISCONNECTED
            if self._tasks:
                # best-effort wait for the playbacks that are still in progress
                await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _close_on_stop(self, stop: asyncio.Event) -> None:
        await stop.wait()
        ws = self._ws
        if ws is not None:
            self.state = SessionState.CLOSING
            await ws.close()

    async def _run_session(self, url: str, stop: asyncio.Event) -> str:
        """
        Runs a single connection to the end, and returns the URL the next one should use.
        """
        self.state = SessionState.CONNECTING
        self.session_id = None
        self.subscribed = False
        self._receive_timeout = None
        ws_logger.info(f"Connecting to Twitch EventSub: {url}")
        session = await self._twitch.get_session()
        try:
            async with session.ws_connect(url) as websocket:
                self._ws = websocket
                try:
                    return await self._handle(websocket)
                finally:
                    self._ws = None
                    self.state = SessionState.CLOSING
        except WebsocketClosed as exc:
            if stop.is_set():
                # we closed it - exit
                ws_logger.info("Websocket stopped.")
            elif exc.received:
                # server closed the connection, not us - reconnect
                ws_logger.warning(f"Websocket closed unexpectedly: {exc}")
            else:
                ws_logger.warning("Websocket connection lost.")
        except ProtocolError as exc:
            ws_logger.error(f"EventSub protocol error: {exc}")
        except SubscriptionError as exc:
            logger.error(f"Failed to create the EventSub subscription: {exc}")
        except AuthError:
            if not self._established:
                # we never got to listen for anything, so there's no point in retrying
                raise
            logger.exception("Unable to obtain an access token for the EventSub subscription")
        except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
            ws_logger.warning(f"EventSub connection problem: {exc!r}")
        except Exception:
            ws_logger.exception("Exception in the EventSub websocket")
        finally:
            self.state = SessionState.DISCONNECTED
        return self.default_url

    async def _handle(self, websocket: aiohttp.ClientWebSocketResponse) -> str:
        # Handshake
        self.state = SessionState.AWAITING_WELCOME
        welcome = await self._wait_for_welcome(websocket)
        if welcome.session_id is None:
            raise ProtocolError(
                ProtocolErrorKind.MISSING_SESSION_ID, "Welcome message missing session id"
            )
        self.session_id = welcome.session_id
        if welcome.keepalive_timeout is not None:
            self._receive_timeout = (
                welcome.keepalive_timeout + KEEPALIVE_GRACE.total_seconds()
            )
        ws_logger.info(f"EventSub session established: {self.session_id}")
        # Subscribe
        broadcaster_id = self._twitch.broadcaster_id
        assert broadcaster_id is not None
        access_token = await self._twitch.get_access_token()
        await self._twitch.create_subscription(access_token, self.session_id, broadcaster_id)
        self.subscribed = True
        self._established = True
        self.state = SessionState.SUBSCRIBED
        logger.info("EventSub subscription active")
        # Notifications
        while True:
            frame = await self._receive_frame(websocket)
            if isinstance(frame, Keepalive):
                ws_logger.log(CALL, "Keepalive received")
            elif isinstance(frame, Reconnect):
                reconnect_url = frame.reconnect_url or self.default_url
                logger.info(f"Twitch requested reconnect to {reconnect_url}")
                return reconnect_url
            elif isinstance(frame, Notification):
                self._dispatch(frame)
            else:
                ws_logger.debug(f"Ignoring frame: {frame}")

    async def _wait_for_welcome(self, websocket: aiohttp.ClientWebSocketResponse) -> Welcome:
        while True:
            frame = await self._receive_frame(websocket)
            if isinstance(frame, Welcome):
                return frame
            ws_logger.debug(f"Ignoring frame received before the welcome: {frame}")

    async def _receive_frame(self, websocket: aiohttp.ClientWebSocketResponse) -> Frame:
        while True:
            try:
                raw_message: aiohttp.WSMessage = await websocket.receive(
                    timeout=self._receive_timeout
                )
            except asyncio.TimeoutError:
                ws_logger.warning("No message received within the keepalive timeout")
                raise WebsocketClosed("Keepalive timeout")
            ws_logger.debug(f"Websocket received: {raw_message}")
            if raw_message.type is WSMsgType.TEXT:
                try:
                    return parse_frame(raw_message.data)
                except ProtocolError as exc:
                    # malformed frames are skipped
                    ws_logger.debug(f"Skipping frame: {exc}")
            elif raw_message.type is WSMsgType.CLOSE:
                raise WebsocketClosed(f"Close code: {raw_message.data}", received=True)
            elif raw_message.type is WSMsgType.CLOSED:
                raise WebsocketClosed(received=False)
            elif raw_message.type is WSMsgType.CLOSING:
                pass  # skip these
            elif raw_message.type is WSMsgType.ERROR:
                error = raw_message.data
                if isinstance(error, BaseException):
                    ws_logger.error(f"Websocket error: {format_traceback(error)}")
                else:
                    ws_logger.error(f"Websocket error: {error}")
                raise WebsocketClosed()
            else:
                ws_logger.debug(f"Skipping message: {raw_message}")

    def _dispatch(self, notification: Notification) -> None:
        # use a task to not block the websocket
        task = asyncio.create_task(task_wrapper(self._twitch.dispatcher.handle)(notification))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
