"""
Redeem Player - Plays clips in OBS when Twitch channel points rewards are redeemed.

This package listens for channel points redemptions over Twitch EventSub,
maps reward titles onto local clip files and restarts an OBS media source with them.
"""

from .version import __version__

# Import main classes for easy access
from .app import run_app
from .twitch import Twitch


def main():
    """Main entry point function."""
    run_app()


__all__ = [
    "__version__",
    "main",
    "run_app",
    "Twitch",
]
