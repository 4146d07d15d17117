from __future__ import annotations

import logging
from time import monotonic
from collections import abc
from datetime import timedelta
from typing import TYPE_CHECKING

from .constants import LOGGER_NAME

if TYPE_CHECKING:
    from .clips import ClipResolver
    from .playback import MediaController
    from .twitch.messages import Notification


logger = logging.getLogger(LOGGER_NAME)


class Dispatcher:
    """
    Turns redemption notifications into clip playback.

    A single cooldown is shared by all rewards: once a clip starts playing,
    every notification arriving within the cooldown window is dropped.
    """

    def __init__(
        self,
        resolver: ClipResolver,
        controller: MediaController,
        cooldown: timedelta,
        *,
        clock: abc.Callable[[], float] = monotonic,
    ):
        self._resolver: ClipResolver = resolver
        self._controller: MediaController = controller
        self._cooldown: float = cooldown.total_seconds()
        self._clock = clock
        self.cooldown_until: float | None = None

    @property
    def cooling_down(self) -> bool:
        return self.cooldown_until is not None and self._clock() < self.cooldown_until

    async def handle(self, notification: Notification) -> None:
        logger.info(f"Redeem by {notification.user_name}: \"{notification.reward_title}\"")
        clip_path = self._resolver.resolve(notification.reward_title)
        if clip_path is None:
            logger.warning(f"No clip found. Expected {self._resolver.expected_pattern()}")
            return
        if self.cooling_down:
            logger.info("Cooldown active, skipping playback.")
            return
        # the window starts now, and is consumed even if the playback is slow or fails
        self.cooldown_until = self._clock() + self._cooldown
        try:
            await self._controller.play_media(clip_path)
        except Exception:
            logger.exception(f"Failed to trigger playback of {clip_path}")
