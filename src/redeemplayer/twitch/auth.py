"""
Authentication handling for Redeem Player.

This module contains the token file storage, and the AuthState class responsible for
handing out an access token that's valid for at least another minute,
refreshing and persisting it when needed.
"""

from __future__ import annotations

import json
import asyncio
import logging
from pathlib import Path
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, TypedDict, TYPE_CHECKING

from ..utils import json_save
from ..exceptions import AuthError, AuthErrorKind
from ..constants import LOGGER_NAME, OAUTH_TOKEN_URL, TOKEN_REFRESH_MARGIN

if TYPE_CHECKING:
    from .client import Twitch
    from ..constants import JsonType


logger = logging.getLogger(LOGGER_NAME)


class TokenResponse(TypedDict, total=False):
    # {
    #     "access_token": "30 chars [a-z0-9]",
    #     "refresh_token": "50 chars [a-z0-9]",
    #     "expires_in": 14124,
    #     "scope": ["channel:read:redemptions"],
    #     "token_type": "bearer"
    # }
    access_token: str
    refresh_token: str
    expires_in: int
    scope: list[str]
    token_type: str


def _to_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


def _from_millis(value: Any) -> datetime | None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not value:
        return None
    return datetime.fromtimestamp(value / 1000, timezone.utc)


@dataclass
class Credentials:
    access_token: str
    refresh_token: str | None = None
    token_type: str | None = None
    scopes: list[str] | None = None
    expires_in: int | None = None
    expires_at: datetime | None = None
    obtained_at: datetime | None = None

    @classmethod
    def from_json(cls, data: JsonType) -> Credentials:
        return cls(
            access_token=data.get("access_token") or '',
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type"),
            scopes=data.get("scope"),
            expires_in=data.get("expires_in"),
            expires_at=_from_millis(data.get("expires_at")),
            obtained_at=_from_millis(data.get("obtained_at")),
        )

    @classmethod
    def from_response(cls, response: TokenResponse, *, now: datetime) -> Credentials:
        expires_in: int = response.get("expires_in") or 0
        return cls(
            access_token=response["access_token"],
            refresh_token=response.get("refresh_token"),
            token_type=response.get("token_type"),
            scopes=response.get("scope"),
            expires_in=response.get("expires_in"),
            expires_at=now + timedelta(seconds=expires_in),
            obtained_at=now,
        )

    def to_json(self) -> JsonType:
        data: JsonType = {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "scope": self.scopes,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "expires_at": _to_millis(self.expires_at),
            "obtained_at": _to_millis(self.obtained_at),
        }
        # skip the missing values, instead of writing nulls
        return {key: value for key, value in data.items() if value is not None}

    def time_remaining(self, now: datetime) -> timedelta:
        if self.expires_at is None:
            # a missing expiration means the token has to be treated as expired
            return timedelta(0)
        return self.expires_at - now

    def merge(self, response: TokenResponse, *, now: datetime) -> Credentials:
        """
        Returns new credentials built from a refresh response.
        Some servers omit the values that didn't change, so those fall back to ours.
        """
        refreshed = Credentials.from_response(response, now=now)
        return replace(
            refreshed,
            refresh_token=refreshed.refresh_token or self.refresh_token,
            scopes=refreshed.scopes if refreshed.scopes is not None else self.scopes,
            token_type=refreshed.token_type or self.token_type,
            expires_in=(
                refreshed.expires_in if refreshed.expires_in is not None else self.expires_in
            ),
        )


class TokenStore:
    def __init__(self, path: Path):
        self.path: Path = path

    def read(self) -> Credentials | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, 'r', encoding="utf8") as file:
                data = json.load(file)
        except (OSError, ValueError):
            logger.exception(f"Failed to parse the token file at {self.path}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Failed to parse the token file at {self.path}: not a JSON object")
            return None
        return Credentials.from_json(data)

    def write(self, credentials: Credentials) -> None:
        json_save(self.path, credentials.to_json())


class AuthState:
    def __init__(self, twitch: Twitch, store: TokenStore | None = None):
        self._twitch: Twitch = twitch
        self._lock = asyncio.Lock()
        if store is None:
            store = TokenStore(twitch.settings.tokens_path)
        self.store: TokenStore = store

    def headers(self, access_token: str) -> JsonType:
        return {
            "Client-Id": self._twitch.settings.twitch_client_id,
            "Authorization": f"Bearer {access_token}",
        }

    async def _token_request(self, payload: dict[str, str], kind: AuthErrorKind) -> TokenResponse:
        settings = self._twitch.settings
        payload = {
            "client_id": settings.twitch_client_id,
            "client_secret": settings.twitch_client_secret,
            **payload,
        }
        async with self._twitch.request("POST", OAUTH_TOKEN_URL, data=payload) as response:
            if not 200 <= response.status < 300:
                action = "refresh" if kind is AuthErrorKind.REFRESH_FAILED else "exchange"
                raise AuthError(
                    kind,
                    f"Token {action} failed with status {response.status}",
                    status=response.status,
                )
            response_json: TokenResponse = await response.json()
        return response_json

    async def exchange_code(self, code: str) -> TokenResponse:
        return await self._token_request(
            {
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self._twitch.settings.redirect_uri,
            },
            AuthErrorKind.CODE_EXCHANGE_FAILED,
        )

    async def exchange_refresh_token(self, refresh_token: str) -> TokenResponse:
        return await self._token_request(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"},
            AuthErrorKind.REFRESH_FAILED,
        )

    async def get_access_token(self) -> str:
        # the lock ensures concurrent callers don't end up refreshing the same token twice
        async with self._lock:
            return await self._get_access_token()

    async def _get_access_token(self) -> str:
        stored = self.store.read()
        if stored is None or not stored.access_token:
            raise AuthError(
                AuthErrorKind.NO_CREDENTIALS,
                f"No tokens found at {self.store.path}. Run the auth command first.",
            )
        if stored.time_remaining(datetime.now(timezone.utc)) >= TOKEN_REFRESH_MARGIN:
            return stored.access_token
        if not stored.refresh_token:
            raise AuthError(
                AuthErrorKind.MISSING_REFRESH_TOKEN,
                "Stored access token expired and refresh_token missing. Re-run the auth command.",
            )
        logger.info("Refreshing Twitch access token...")
        response = await self.exchange_refresh_token(stored.refresh_token)
        merged = stored.merge(response, now=datetime.now(timezone.utc))
        # persist first, so that the token we hand out can be recovered on the next launch
        self.store.write(merged)
        logger.info("Token refreshed and saved.")
        return merged.access_token

    def save_response(self, response: TokenResponse) -> Credentials:
        credentials = Credentials.from_response(response, now=datetime.now(timezone.utc))
        self.store.write(credentials)
        logger.info(f"Tokens saved to {self.store.path}")
        return credentials
