"""
Main entry point for Redeem Player.

This module allows running the package with `python -m redeemplayer`,
and delegates to the app module for the actual application logic.
"""

from __future__ import annotations

from .app import run_app

if __name__ == "__main__":
    run_app()
