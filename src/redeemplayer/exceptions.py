from __future__ import annotations

from enum import Enum


class RedeemException(Exception):
    """
    Base exception class for this application.
    """
    def __init__(self, *args: object):
        if args:
            super().__init__(*args)
        else:
            super().__init__("Unknown error")


class ConfigError(RedeemException):
    """
    Raised when the runtime configuration is missing or invalid.
    """


class AuthErrorKind(Enum):
    NO_CREDENTIALS = "no_credentials"
    MISSING_REFRESH_TOKEN = "missing_refresh_token"
    REFRESH_FAILED = "refresh_failed"
    CODE_EXCHANGE_FAILED = "code_exchange_failed"


class AuthError(RedeemException):
    """
    Raised when a usable access token can't be obtained.
    """
    def __init__(self, kind: AuthErrorKind, message: str, *, status: int | None = None):
        super().__init__(message)
        self.kind: AuthErrorKind = kind
        self.status: int | None = status


class ProtocolErrorKind(Enum):
    MISSING_SESSION_ID = "missing_session_id"
    MALFORMED_FRAME = "malformed_frame"


class ProtocolError(RedeemException):
    """
    Raised when the event-stream server sends something we can't make sense of.
    """
    def __init__(self, kind: ProtocolErrorKind, message: str | None = None):
        super().__init__(message or kind.value.replace('_', ' ').capitalize())
        self.kind: ProtocolErrorKind = kind


class SubscriptionError(RedeemException):
    """
    Raised when the EventSub subscription couldn't be created.
    """
    def __init__(self, status: int, body: str = ''):
        super().__init__(f"Subscription request failed with status {status}: {body}")
        self.status: int = status
        self.body: str = body


class ControllerConnectionError(RedeemException):
    """
    Raised when the playback controller couldn't be reached after all connect attempts.
    """


class PlaybackError(RedeemException):
    """
    Raised when a playback command sent to the controller fails.
    """


class WebsocketClosed(RedeemException):
    """
    Raised when the websocket connection has been closed.

    Attributes:
    -----------
    received: bool
        `True` if the closing was caused by our side receiving a close frame, `False` otherwise.
    """
    def __init__(self, *args: object, received: bool = False):
        super().__init__(*args)
        self.received: bool = received
