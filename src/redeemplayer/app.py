"""
Main application logic for Redeem Player.

This module contains the main application execution logic,
separated from argument parsing for better modularity.
"""

from __future__ import annotations

import sys
import signal
import asyncio
import logging
import warnings
from datetime import datetime
from typing import NoReturn, TYPE_CHECKING

from .twitch import Twitch, AuthHelper
from .settings import Settings
from .exceptions import RedeemException, AuthError, ConfigError
from .constants import FILE_FORMATTER, LOG_PATH, LOGGER_NAME, OUTPUT_FORMATTER, WS_LOGGER_NAME
from .cli import parse_arguments

if TYPE_CHECKING:
    from collections import abc

    from .cli import ParsedArgs


warnings.simplefilter("default", ResourceWarning)
logger = logging.getLogger(LOGGER_NAME)


def setup_logging(settings: Settings) -> None:
    if settings.logging_level > logging.DEBUG:
        # redirect the root logger into a NullHandler, effectively ignoring all logging calls
        # that aren't ours. This always runs, unless the main logging level is DEBUG or lower.
        logging.getLogger().addHandler(logging.NullHandler())
    logger.setLevel(settings.logging_level)
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(OUTPUT_FORMATTER)
    logger.addHandler(console)
    if settings.log:
        handler = logging.FileHandler(LOG_PATH)
        handler.setFormatter(FILE_FORMATTER)
        logger.addHandler(handler)
    logging.getLogger(WS_LOGGER_NAME).setLevel(settings.debug_ws)


async def run_command(client: Twitch, args: ParsedArgs) -> int:
    """
    Runs the selected command to its end, and returns the exit status.
    """
    if args.command == "auth":
        await AuthHelper(client).serve(client.stop_event)
        return 0
    elif args.command == "simulate":
        try:
            clip_path = await client.simulate(args.reward_title)
        except RedeemException as exc:
            logger.error(f"Simulated playback failed: {exc}")
            return 1
        if clip_path is None:
            logger.error(
                f"No clip found for \"{args.reward_title}\". "
                f"Expected {client.resolver.expected_pattern()}"
            )
            return 1
        logger.info(f"Simulated reward playback for \"{args.reward_title}\" using {clip_path}")
        return 0
    # run
    try:
        await client.run()
    except AuthError as exc:
        logger.error(f"Authorization failed: {exc}")
        return 1
    except RedeemException as exc:
        logger.error(f"Fatal error: {exc}")
        return 1
    except Exception:
        logger.exception("Fatal error encountered")
        return 1
    return 0


async def main(argv: abc.Sequence[str] | None = None) -> int:
    """Main application entry point."""
    # Parse command line arguments
    args = parse_arguments(argv)

    # Load settings
    try:
        settings = Settings(args)
    except ConfigError as exc:
        print(f"There was an error while loading the settings file:\n\n{exc}", file=sys.stderr)
        return 1

    # Handle logging setup
    setup_logging(settings)
    logger.info(f"Loaded config from {settings.config_path}")

    client = Twitch(settings)
    loop = asyncio.get_running_loop()
    if sys.platform == "linux":
        loop.add_signal_handler(signal.SIGINT, lambda *_: client.close())
        loop.add_signal_handler(signal.SIGTERM, lambda *_: client.close())
    try:
        exit_status = await run_command(client, args)
    finally:
        if sys.platform == "linux":
            loop.remove_signal_handler(signal.SIGINT)
            loop.remove_signal_handler(signal.SIGTERM)
        logger.info("Exiting...")
        await client.shutdown()
    return exit_status


def run_app() -> NoReturn:
    """Run the application with proper setup and cleanup."""
    print(f"{datetime.now().strftime('%Y-%m-%d %X')}: Starting: Redeem Player")

    # SSL trust store injection
    import truststore
    truststore.inject_into_ssl()

    try:
        exit_status = asyncio.run(main())
    except KeyboardInterrupt:
        # signal handlers aren't available outside of Linux
        exit_status = 0
    sys.exit(exit_status)


if __name__ == "__main__":
    run_app()
