"""Startup validation of persisted channel and message references."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from spotibot.core.errors import NotFound, Transient

from .messaging import DiscordMessenger

if TYPE_CHECKING:
    from spotibot.spotify.service import SpotifyService

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    removed_channels: int = 0
    cleared_messages: int = 0
    orphaned_messages: int = 0


class StartupValidator:
    """Prunes references to channels and messages that no longer exist.

    Runs once before the polling loop starts. Transient Discord errors
    leave the entry in place; only confirmed-missing resources are pruned.
    """

    def __init__(self, service: "SpotifyService", messenger: DiscordMessenger):
        self.service = service
        self.messenger = messenger

    async def validate(self) -> ValidationReport:
        report = ValidationReport()
        logger.info("Validating persisted Spotify data...")

        for user_id, channel_id in self.service.get_all_channels().items():
            try:
                channel = await self.messenger.fetch_channel(channel_id)
            except Transient as e:
                logger.warning(f"Could not verify channel {channel_id} for {user_id}: {e}")
                continue

            if channel is None:
                logger.info(f"Channel {channel_id} not found, removing config for {user_id}")
                self.service.remove_user_channel(user_id)
                report.removed_channels += 1
                continue

            message_id = self.service.get_user_message(user_id)
            if not message_id:
                continue
            try:
                await self.messenger.fetch_message(channel, message_id)
            except NotFound:
                logger.info(f"Message {message_id} not found for {user_id}, will send a new one")
                self.service.clear_user_message(user_id)
                report.cleared_messages += 1
            except Transient as e:
                logger.warning(f"Could not verify message {message_id} for {user_id}: {e}")

        channels = self.service.get_all_channels()
        for user_id in list(self.service.message_refs()):
            if user_id not in channels:
                self.service.clear_user_message(user_id)
                report.orphaned_messages += 1

        if report.removed_channels or report.cleared_messages or report.orphaned_messages:
            logger.info(
                f"Cleaned up {report.removed_channels} channel config(s), "
                f"{report.cleared_messages} missing message(s), "
                f"{report.orphaned_messages} orphaned message ref(s)"
            )

        logger.info(
            f"Persisted data summary: {len(self.service.linked_user_ids())} linked user(s), "
            f"{len(self.service.get_all_channels())} channel config(s)"
        )
        return report
