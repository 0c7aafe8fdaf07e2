"""Spotify feature module."""

from discord.ext import commands

from .cog import SpotifyCog

__all__ = ["SpotifyCog", "setup"]


async def setup(bot: commands.Bot) -> None:
    """Extension entry point."""
    await bot.add_cog(SpotifyCog(bot, bot.spotify, bot.settings))  # type: ignore[attr-defined]
