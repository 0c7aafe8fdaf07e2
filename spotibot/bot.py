"""
Spotibot Discord Bot
Mirrors linked users' Spotify playback into a shared channel
"""

import asyncio
import logging
import os

import discord
from discord.ext import commands
from dotenv import load_dotenv
from pydantic import ValidationError

from . import BOT_VERSION
from .config import PROJECT_DIR, Settings, get_settings
from .core.http_server import HTTPServer
from .core.logging import setup_logging
from .spotify.service import SpotifyService

logger = logging.getLogger("spotibot")


class SpotibotClient(commands.Bot):
    """Spotibot Discord Bot client"""

    def __init__(self, settings: Settings, spotify: SpotifyService):
        intents = discord.Intents.default()

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
        )

        self.settings = settings
        self.spotify = spotify
        self.http_server: HTTPServer | None = None

        self.initial_extensions = [
            "spotibot.cogs.spotify",
        ]

    async def setup_hook(self) -> None:
        """Bot startup: callback server, cogs, slash command sync"""
        if self.settings.spotify_callback_port is not None:
            self.http_server = HTTPServer(
                self.spotify,
                self.settings.spotify_redirect_uri,
                bot=self,
                port=self.settings.spotify_callback_port,
            )
            await self.http_server.start()

        self.spotify.sweep_oauth_states()

        loaded = []
        failed = []
        for extension in self.initial_extensions:
            try:
                await self.load_extension(extension)
                loaded.append(extension.split(".")[-1])
            except Exception as e:
                failed.append(f"{extension.split('.')[-1]} ({e})")
                logger.exception(f"Failed to load {extension}")

        if loaded:
            logger.info(f"[green]Loaded cogs:[/green] {', '.join(loaded)}")
        if failed:
            logger.error(f"[red]Failed to load:[/red] {', '.join(failed)}")

        logger.info("[yellow]Syncing slash commands...[/yellow]")
        guild_id = self.settings.discord_guild_id
        if guild_id:
            # Guild sync is immediate
            guild = discord.Object(id=int(guild_id))
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logger.info(f"[magenta]Synced slash commands to guild {guild_id}[/magenta]")
        else:
            # Global sync can take up to an hour to propagate
            await self.tree.sync()
            logger.info("[magenta]Synced slash commands globally[/magenta]")

    async def on_ready(self) -> None:
        """Bot connected and ready"""
        if self.user is None:
            return
        logger.info(
            f"[bold green]Bot ready:[/bold green] {self.user} [dim](ID: {self.user.id})[/dim]"
        )
        logger.info(
            f"[cyan]Connected:[/cyan] {len(self.guilds)} guild(s) | "
            f"discord.py {discord.__version__} | spotibot {BOT_VERSION}"
        )
        logger.info(
            f"[cyan]Spotify:[/cyan] {len(self.spotify.linked_user_ids())} linked user(s), "
            f"{len(self.spotify.get_all_channels())} channel config(s)"
        )

    async def close(self) -> None:
        # Unloads extensions first, which cancels the polling loop
        await super().close()
        if self.http_server:
            await self.http_server.stop()
        await self.spotify.close()


async def main() -> None:
    """Bot entry point"""
    load_dotenv(dotenv_path=PROJECT_DIR / ".env", encoding="utf-8")
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        settings = get_settings()
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]).upper() for err in e.errors())
        logger.error(f"[bold red]Invalid configuration:[/bold red] {missing}")
        logger.error("Set DISCORD_BOT_TOKEN, SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET in .env")
        return

    setup_logging(settings.log_level, settings.mute_spotify_debug)
    spotify = SpotifyService.from_settings(settings)

    async with SpotibotClient(settings, spotify) as bot:
        try:
            await bot.start(settings.discord_bot_token)
        except (KeyboardInterrupt, asyncio.CancelledError):
            if not bot.is_closed():
                await bot.close()


def run() -> None:
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("[yellow]Bot stopped[/yellow]")
    except Exception as e:
        logger.error(f"[bold red]Bot crashed:[/bold red] {e}", exc_info=e)


if __name__ == "__main__":
    run()
