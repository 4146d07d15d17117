"""
Clip file lookup for redeemed rewards.

A reward titled "Play: Tasty Clip!" with the "Play:" prefix configured maps onto the
"tasty-clip" slug, which is then looked up inside the clips directory,
trying every configured extension in order.
"""

from __future__ import annotations

import re
import logging
from pathlib import Path
from collections import abc
from typing import TYPE_CHECKING

from .constants import LOGGER_NAME

if TYPE_CHECKING:
    from .settings import Settings


logger = logging.getLogger(LOGGER_NAME)
WHITESPACE_PATTERN = re.compile(r"\s+")
DISALLOWED_PATTERN = re.compile(r"[^a-z0-9\-_]")


def slug_from_title(title: str, prefix: str) -> str | None:
    if not title:
        return None
    normalized_prefix = prefix.strip().lower()
    stripped_title = title.strip()
    if not stripped_title.lower().startswith(normalized_prefix):
        return None
    remainder = stripped_title[len(normalized_prefix):].strip().lower()
    slug = DISALLOWED_PATTERN.sub('', WHITESPACE_PATTERN.sub('-', remainder))
    return slug or None


class ClipResolver:
    def __init__(self, clips_dir: Path, title_prefix: str, extensions: abc.Iterable[str]):
        self.clips_dir: Path = clips_dir.resolve()
        self.title_prefix: str = title_prefix
        self.extensions: list[str] = list(extensions)

    @classmethod
    def from_settings(cls, settings: Settings) -> ClipResolver:
        return cls(settings.clips_path, settings.title_prefix, settings.extensions)

    def expected_pattern(self) -> str:
        return (
            f"\"{self.title_prefix} <name>\" => "
            f"{self.clips_dir}/<name>.{{{', '.join(self.extensions)}}}"
        )

    def ensure_dir(self) -> None:
        if not self.clips_dir.exists():
            logger.info(f"Creating the clips directory: {self.clips_dir}")
            self.clips_dir.mkdir(parents=True, exist_ok=True)

    def resolve(self, reward_title: str) -> Path | None:
        slug = slug_from_title(reward_title, self.title_prefix)
        if slug is None:
            return None
        for extension in self.extensions:
            candidate = (self.clips_dir / f"{slug}{extension}").resolve()
            if not candidate.is_relative_to(self.clips_dir):
                # an extension like "/../x" could escape the clips directory
                continue
            if candidate.is_file():
                return candidate
        return None
