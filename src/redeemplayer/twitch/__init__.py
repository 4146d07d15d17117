"""
Twitch module for Redeem Player.

This module contains all Twitch-related functionality organized into logical submodules:
- auth: Token storage and refreshing
- oauth: One-time authorization helper
- client: Main Twitch client class
- messages: EventSub frame parsing
- websocket: EventSub websocket session handling
"""

from .client import Twitch
from .auth import AuthState, Credentials, TokenStore
from .oauth import AuthHelper
from .websocket import EventSubWebsocket

__all__ = [
    "Twitch",
    "AuthState",
    "AuthHelper",
    "Credentials",
    "TokenStore",
    "EventSubWebsocket",
]
