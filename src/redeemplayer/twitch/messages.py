"""
EventSub websocket frames.

Every text frame received is parsed into exactly one of the frame classes below.
Frames of a type we don't handle end up as `UnknownFrame`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union, TYPE_CHECKING

from ..exceptions import ProtocolError, ProtocolErrorKind

if TYPE_CHECKING:
    from ..constants import JsonType


@dataclass(frozen=True)
class Welcome:
    # can be None here, so that the session can tell a bad welcome from a bad frame
    session_id: str | None
    keepalive_timeout: int | None = None


@dataclass(frozen=True)
class Keepalive:
    pass


@dataclass(frozen=True)
class Reconnect:
    reconnect_url: str | None


@dataclass(frozen=True)
class Notification:
    reward_title: str
    user_name: str


@dataclass(frozen=True)
class UnknownFrame:
    message_type: str | None


Frame = Union[Welcome, Keepalive, Reconnect, Notification, UnknownFrame]


def _get_dict(data: JsonType, key: str) -> JsonType:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ProtocolError(ProtocolErrorKind.MALFORMED_FRAME, f"Expected an object at {key!r}")
    return value


def _get_str(data: JsonType, key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def parse_frame(raw: str | bytes) -> Frame:
    # Frame example:
    # {
    #     "metadata": {
    #         "message_id": "96a3f3b5-5dec-4eed-908e-e11ee657416c",
    #         "message_type": "session_welcome",
    #         "message_timestamp": "2023-07-19T14:56:51.634234626Z"
    #     },
    #     "payload": {
    #         "session": {
    #             "id": "AQoQILE98gtqShGmLD7AM6yJThAB",
    #             "status": "connected",
    #             "connected_at": "2023-07-19T14:56:51.616329898Z",
    #             "keepalive_timeout_seconds": 10,
    #             "reconnect_url": null
    #         }
    #     }
    # }
    try:
        message: Any = json.loads(raw)
    except ValueError as exc:
        raise ProtocolError(ProtocolErrorKind.MALFORMED_FRAME, "Frame isn't valid JSON") from exc
    if not isinstance(message, dict):
        raise ProtocolError(ProtocolErrorKind.MALFORMED_FRAME, "Frame isn't a JSON object")
    message_type = _get_str(_get_dict(message, "metadata"), "message_type")
    payload = _get_dict(message, "payload")
    if message_type == "session_welcome":
        session = _get_dict(payload, "session")
        keepalive = session.get("keepalive_timeout_seconds")
        return Welcome(
            session_id=_get_str(session, "id"),
            keepalive_timeout=keepalive if isinstance(keepalive, int) and keepalive > 0 else None,
        )
    elif message_type == "session_keepalive":
        return Keepalive()
    elif message_type == "session_reconnect":
        return Reconnect(reconnect_url=_get_str(_get_dict(payload, "session"), "reconnect_url"))
    elif message_type == "notification":
        event = _get_dict(payload, "event")
        return Notification(
            reward_title=_get_str(_get_dict(event, "reward"), "title") or '',
            user_name=_get_str(event, "user_name") or "unknown",
        )
    return UnknownFrame(message_type)
