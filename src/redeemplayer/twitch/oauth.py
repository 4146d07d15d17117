"""
One-time authorization helper for Redeem Player.

Serves a tiny local web page linking to Twitch's authorization screen,
and receives the redirect back, exchanging the code for tokens and saving them.
"""

from __future__ import annotations

import html
import asyncio
import logging
import secrets
from typing import TYPE_CHECKING

import aiohttp
from aiohttp import web

from ..exceptions import AuthError
from ..constants import LOGGER_NAME, OAUTH_AUTHORIZE_URL

if TYPE_CHECKING:
    from yarl import URL

    from .client import Twitch


logger = logging.getLogger(LOGGER_NAME)


class AuthHelper:
    def __init__(self, twitch: Twitch):
        self._twitch: Twitch = twitch
        # random value echoed back by Twitch, ties the callback to the link we handed out
        self.state: str = secrets.token_hex(16)

    @property
    def authorize_url(self) -> URL:
        settings = self._twitch.settings
        return OAUTH_AUTHORIZE_URL.with_query(
            {
                "client_id": settings.twitch_client_id,
                "redirect_uri": settings.redirect_uri,
                "response_type": "code",
                "scope": ' '.join(settings.scopes),
                "state": self.state,
            }
        )

    async def index(self, request: web.Request) -> web.Response:
        redirect_uri = html.escape(self._twitch.settings.redirect_uri)
        authorize_url = html.escape(str(self.authorize_url))
        return web.Response(
            text=(
                "<h2>Twitch OAuth</h2>\n"
                f"<p><a href=\"{authorize_url}\">Authorize on Twitch</a></p>\n"
                f"<p>Redirect URI: <code>{redirect_uri}</code></p>\n"
            ),
            content_type="text/html",
        )

    async def callback(self, request: web.Request) -> web.Response:
        if request.query.get("state") != self.state:
            return web.Response(status=400, text="Invalid state")
        code = request.query.get("code")
        if not code:
            return web.Response(status=400, text="Missing code")
        auth = self._twitch.auth
        try:
            response = await auth.exchange_code(code)
            auth.save_response(response)
        except (AuthError, aiohttp.ClientError, OSError, KeyError):
            logger.exception("OAuth callback failed")
            return web.Response(status=500, text="OAuth callback failed")
        return web.json_response({"saved_to": str(auth.store.path)})

    def make_app(self) -> web.Application:
        app = web.Application()
        app.add_routes([web.get('/', self.index), web.get("/callback", self.callback)])
        return app

    async def serve(self, stop: asyncio.Event) -> None:
        """
        Serves the helper on the configured port, until `stop` is set.
        """
        port: int = self._twitch.settings.port
        runner = web.AppRunner(self.make_app())
        await runner.setup()
        try:
            site = web.TCPSite(runner, port=port)
            await site.start()
            logger.info(f"Auth helper listening on http://localhost:{port}")
            logger.info("Open this URL in your browser to authorize.")
            await stop.wait()
        finally:
            await runner.cleanup()
