"""
Command line interface for Redeem Player.

This module handles argument parsing and provides a clean interface
for command line options.
"""

from __future__ import annotations

import logging
import argparse
from pathlib import Path
from collections import abc
from typing import Literal

from .version import __version__
from .constants import CALL, SELF_PATH


Command = Literal["auth", "run", "simulate"]


class ParsedArgs(argparse.Namespace):
    """Parsed command line arguments with computed properties."""

    command: Command
    reward_title: str
    config: Path | None
    log: bool
    _verbose: int
    _quiet: int
    _debug_ws: bool

    @property
    def _verbosity(self) -> int:
        # INFO is shown by default, "-q" goes below that
        return min(max(2 + self._verbose - self._quiet, 0), 4)

    @property
    def logging_level(self) -> int:
        return {
            0: logging.ERROR,
            1: logging.WARNING,
            2: logging.INFO,
            3: CALL,
            4: logging.DEBUG,
        }[self._verbosity]

    @property
    def debug_ws(self) -> int:
        """
        If the debug flag is True, return DEBUG.
        If the main logging level is DEBUG, return INFO to avoid seeing raw messages.
        Otherwise, return NOTSET to inherit the global logging level.
        """
        if self._debug_ws:
            return logging.DEBUG
        elif self._verbosity >= 4:
            return logging.INFO
        return logging.NOTSET


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        SELF_PATH.name,
        description="Plays a clip in OBS whenever a Twitch channel points reward is redeemed.",
    )
    parser.add_argument("--version", action="version", version=f"v{__version__}")
    parser.add_argument(
        "-v", dest="_verbose", action="count", default=0, help="increase logging verbosity"
    )
    parser.add_argument(
        "-q", dest="_quiet", action="count", default=0, help="decrease logging verbosity"
    )
    parser.add_argument("--log", action="store_true", help="also write the log into log.txt")
    parser.add_argument(
        "--config", type=Path, default=None, help="path to the runtime.config.json file"
    )
    # debug options
    parser.add_argument(
        "--debug-ws", dest="_debug_ws", action="store_true", help=argparse.SUPPRESS
    )
    subparsers = parser.add_subparsers(dest="command", metavar="command", required=True)
    subparsers.add_parser("auth", help="launch the OAuth helper")
    subparsers.add_parser("run", help="start the Twitch listener, playing clips in OBS")
    simulate = subparsers.add_parser("simulate", help="trigger a playback for testing")
    simulate.add_argument("reward_title", help="reward title to simulate, like \"Play: tasty\"")
    return parser


def parse_arguments(argv: abc.Sequence[str] | None = None) -> ParsedArgs:
    """Parse command line arguments and return parsed namespace."""
    parser = build_parser()
    return parser.parse_args(argv, namespace=ParsedArgs())
