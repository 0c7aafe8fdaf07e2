"""Messaging adapter over discord.py.

Translates discord.py exceptions into the shared error taxonomy so the
reconciler and the startup validator only ever see ``NotFound`` or
``Transient``.
"""

import logging
from typing import Any

import discord

from spotibot.core.errors import NotFound, Transient

logger = logging.getLogger(__name__)


class DiscordMessenger:
    def __init__(self, client: discord.Client):
        self.client = client

    @property
    def bot_user_id(self) -> int | None:
        return self.client.user.id if self.client.user else None

    async def fetch_channel(self, channel_id: str) -> Any | None:
        """Resolve a messageable channel, or None when it is gone or unusable."""
        try:
            channel = self.client.get_channel(int(channel_id))
            if channel is None:
                channel = await self.client.fetch_channel(int(channel_id))
        except (discord.NotFound, discord.Forbidden, discord.InvalidData):
            return None
        except ValueError:
            logger.warning(f"Ignoring malformed channel id {channel_id!r}")
            return None
        except discord.HTTPException as e:
            raise Transient(f"Fetching channel {channel_id} failed: {e}") from e

        if not isinstance(channel, discord.abc.Messageable):
            return None
        return channel

    async def fetch_message(self, channel: Any, message_id: str) -> discord.Message:
        try:
            return await channel.fetch_message(int(message_id))
        except discord.NotFound as e:
            raise NotFound(f"Message {message_id} not found") from e
        except discord.HTTPException as e:
            raise Transient(f"Fetching message {message_id} failed: {e}") from e

    async def send(self, channel: Any, content: str, embed: discord.Embed) -> str:
        try:
            message = await channel.send(content=content, embed=embed)
        except discord.HTTPException as e:
            raise Transient(f"Sending to channel {channel.id} failed: {e}") from e
        return str(message.id)

    async def edit(self, channel: Any, message_id: str, content: str, embed: discord.Embed) -> None:
        try:
            await channel.get_partial_message(int(message_id)).edit(content=content, embed=embed)
        except discord.NotFound as e:
            raise NotFound(f"Message {message_id} not found") from e
        except discord.HTTPException as e:
            raise Transient(f"Editing message {message_id} failed: {e}") from e

    async def fetch_user(self, user_id: str) -> discord.User:
        try:
            return await self.client.fetch_user(int(user_id))
        except discord.NotFound as e:
            raise NotFound(f"User {user_id} not found") from e
        except discord.HTTPException as e:
            raise Transient(f"Fetching user {user_id} failed: {e}") from e

    async def recent_messages(self, channel: Any, limit: int = 100) -> list[discord.Message]:
        try:
            return [message async for message in channel.history(limit=limit)]
        except discord.HTTPException as e:
            raise Transient(f"Reading history of channel {channel.id} failed: {e}") from e
