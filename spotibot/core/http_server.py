"""HTTP listener for the Spotify OAuth redirect, plus liveness routes"""

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from aiohttp import web

from .errors import SpotibotError

if TYPE_CHECKING:
    from discord.ext.commands import Bot

    from spotibot.spotify.service import SpotifyService

logger = logging.getLogger(__name__)

RETRY_HINT = "Please try again with /spotify link"
LINKED_PAGE = (
    "Successfully linked your Spotify account! "
    "You can close this window and return to Discord."
)


def _html(text: str, status: int = 200) -> web.Response:
    return web.Response(text=text, status=status, content_type="text/html")


class HTTPServer:
    """Serves /, /health, /ping and the OAuth callback route.

    The callback path is taken from the configured redirect URI; ``/callback``
    is always served as well so a bare default keeps working.
    """

    def __init__(
        self,
        service: "SpotifyService",
        redirect_uri: str,
        bot: "Bot | None" = None,
        host: str = "0.0.0.0",
        port: int = 3000,
    ) -> None:
        self.service = service
        self.bot: Any = bot
        self.host = host
        self.port = port
        self.callback_path = urlparse(redirect_uri).path or "/callback"
        self.app = web.Application()
        self.runner: web.AppRunner | None = None

        paths = {self.callback_path, "/callback"}
        self.app.add_routes(
            [
                web.get("/", self.handle_root),
                web.get("/health", self.handle_health),
                web.get("/ping", self.handle_ping),
                *(web.get(path, self.handle_callback) for path in sorted(paths)),
            ]
        )

    async def handle_root(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "service": "spotibot",
                "linked_users": len(self.service.linked_user_ids()),
                "channel_configs": len(self.service.get_all_channels()),
            }
        )

    async def handle_health(self, request: web.Request) -> web.Response:
        """Liveness: always 200, ``ready`` reflects the gateway connection"""
        ready = self.bot is not None and self.bot.is_ready()
        return web.json_response({"status": "healthy" if ready else "starting", "ready": ready})

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def handle_callback(self, request: web.Request) -> web.Response:
        """Spotify redirects here with ?code=&state= (or ?error=)"""
        error = request.query.get("error")
        code = request.query.get("code")
        state = request.query.get("state")

        if error:
            return _html(f"Error: {error}. {RETRY_HINT}", status=400)

        if not code or not state:
            return _html(f"Missing code or state parameter. {RETRY_HINT}", status=400)

        try:
            user_id = await self.service.complete_link(state, code)
        except SpotibotError as e:
            logger.error(f"OAuth code exchange failed: {type(e).__name__}: {e}")
            return _html(f"Failed to exchange authorization code. {RETRY_HINT}", status=500)

        if user_id is None:
            return _html(f"Invalid or expired state. {RETRY_HINT}", status=400)

        logger.info(f"OAuth callback linked user {user_id}")
        return _html(LINKED_PAGE)

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()
        await web.TCPSite(self.runner, self.host, self.port).start()
        logger.info(
            f"[cyan]Callback server listening on {self.host}:{self.port}{self.callback_path}[/cyan]"
        )

    async def stop(self) -> None:
        if self.runner is None:
            return
        await self.runner.cleanup()
        self.runner = None
        logger.info("Callback server stopped")
