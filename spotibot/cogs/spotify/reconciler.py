"""Reconciliation loop: mirror each user's playback into one status message.

Per user and per cycle:

- not playing: nothing is touched
- playing, same song: edit the stored message; if it vanished, send a new one
- playing, new song: fresh render; edit the stored message when it still
  exists, otherwise adopt a matching message from channel history or send
  a new one

Every per-user failure is caught at the loop boundary.
"""

import logging
import random
from enum import Enum
from typing import TYPE_CHECKING, Any

from spotibot.core.errors import NotFound, SpotibotError, Transient
from spotibot.spotify.models import Track

from .constants import LISTENING_MARKER, PING_PREFIX
from .embeds import build_status_content, build_track_embed, display_name
from .messaging import DiscordMessenger

if TYPE_CHECKING:
    from spotibot.spotify.service import SpotifyService

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    IDLE = "idle"
    SKIPPED = "skipped"
    EDITED = "edited"
    ADOPTED = "adopted"
    SENT = "sent"
    REPLACED = "replaced"
    FAILED = "failed"


class PingRule:
    """Occasionally prefix an @everyone ping when a keyword artist comes on."""

    def __init__(self, keyword: str, chance: float, rng: random.Random | None = None):
        self.keyword = keyword.lower().strip()
        self.chance = chance
        self.rng = rng or random.Random()

    def apply(self, track: Track, content: str) -> str:
        if not self.keyword or self.chance <= 0:
            return content
        if self.keyword not in track.artist_names.lower():
            return content
        if self.rng.random() >= self.chance:
            return content
        logger.info(f"Ping roll succeeded for {track.artist_names}")
        return f"{PING_PREFIX.format(artist=track.artist_names)}\n\n{content}"


def references_user(message: Any, user: Any) -> bool:
    """True when the message text or embed author points at *user*."""
    if (message.content or "").startswith(f"{display_name(user)} {LISTENING_MARKER}"):
        return True
    avatar_url = user.display_avatar.url
    return any(embed.author.icon_url == avatar_url for embed in message.embeds)


def matches_track(message: Any, track: Track | None) -> bool:
    if track is None or not track.external_url:
        return False
    return any(embed.url == track.external_url for embed in message.embeds)


class StatusReconciler:
    def __init__(
        self,
        service: "SpotifyService",
        messenger: DiscordMessenger,
        ping_rule: PingRule | None = None,
        history_limit: int = 100,
    ):
        self.service = service
        self.messenger = messenger
        self.ping_rule = ping_rule
        self.history_limit = history_limit

    # ==================== Cycle ====================

    async def run_cycle(self) -> dict[str, Outcome]:
        """One polling cycle over every linked user."""
        channel_id = self.service.get_shared_channel()
        if not channel_id:
            logger.debug("No Spotify channel configured, skipping update")
            return {}

        user_ids = self.service.linked_user_ids()
        if not user_ids:
            logger.debug("No linked users, skipping update")
            return {}

        # Read fingerprints before polling overwrites them
        previous = {user_id: self.service.get_last_fingerprint(user_id) for user_id in user_ids}

        await self.service.poll_all_users()

        channel = await self.resolve_channel(channel_id)
        if channel is None:
            return {}

        outcomes: dict[str, Outcome] = {}
        for user_id in user_ids:
            try:
                outcomes[user_id] = await self.reconcile_user(channel, user_id, previous.get(user_id))
            except Exception as e:
                logger.exception(f"Error updating status for user {user_id}: {e}")
                outcomes[user_id] = Outcome.FAILED

        logger.debug(f"Completed polling cycle: {len(outcomes)} user(s)")
        return outcomes

    async def resolve_channel(self, channel_id: str) -> Any | None:
        """Fetch the shared channel, dropping every config entry if it is gone."""
        try:
            channel = await self.messenger.fetch_channel(channel_id)
        except Transient as e:
            logger.warning(f"Could not resolve Spotify channel {channel_id}: {e}")
            return None

        if channel is None:
            removed = self.service.remove_channel_everywhere(channel_id)
            logger.warning(
                f"Spotify channel {channel_id} no longer exists, removed {removed} config entr(ies)"
            )
        return channel

    # ==================== Per user ====================

    async def reconcile_user(
        self, channel: Any, user_id: str, previous_fingerprint: str | None
    ) -> Outcome:
        snapshot = self.service.get_snapshot(user_id)
        track = snapshot.track if snapshot else None
        if track is None:
            logger.debug(f"User {user_id} is not currently playing anything")
            return Outcome.IDLE

        try:
            user = await self.messenger.fetch_user(user_id)
        except SpotibotError as e:
            logger.warning(f"Skipping user {user_id}: {type(e).__name__}: {e}")
            return Outcome.SKIPPED

        changed = previous_fingerprint != track.fingerprint
        content = build_status_content(user, track)
        if changed:
            logger.info(
                f"New song for {user} ({user_id}): {previous_fingerprint or 'none'} -> "
                f"{track.fingerprint}"
            )
            if self.ping_rule is not None:
                content = self.ping_rule.apply(track, content)
        embed = build_track_embed(track, user)

        replaced = False
        message_id = self.service.get_user_message(user_id)
        if message_id:
            try:
                await self.messenger.edit(channel, message_id, content, embed)
                logger.debug(
                    f"Updated message {message_id} for {user_id}: {track.progress_percent}% "
                    f"({track.progress_ms // 1000}s / {track.duration_ms // 1000}s)"
                )
                return Outcome.EDITED
            except NotFound:
                logger.warning(f"Message {message_id} for {user_id} is gone, sending a new one")
                self.service.clear_user_message(user_id)
                replaced = True

            if not changed:
                return await self._send_new(channel, user_id, content, embed, Outcome.REPLACED)

        found_id = await self.find_existing_message(channel, user, track)
        if found_id:
            try:
                await self.messenger.edit(channel, found_id, content, embed)
            except NotFound:
                logger.debug(f"Discovered message {found_id} vanished before adoption")
            else:
                self.service.set_user_message(user_id, found_id)
                logger.info(f"Adopted existing message {found_id} for {user_id}")
                return Outcome.ADOPTED

        return await self._send_new(
            channel, user_id, content, embed, Outcome.REPLACED if replaced else Outcome.SENT
        )

    async def _send_new(
        self, channel: Any, user_id: str, content: str, embed: Any, outcome: Outcome
    ) -> Outcome:
        new_id = await self.messenger.send(channel, content, embed)
        self.service.set_user_message(user_id, new_id)
        logger.info(f"Sent status message {new_id} for {user_id}")
        return outcome

    # ==================== Discovery ====================

    async def find_existing_message(
        self,
        channel: Any,
        user: Any,
        track: Track | None,
        history: list[Any] | None = None,
    ) -> str | None:
        """Best-effort lookup of a bot status message for *user* in recent history.

        Messages already referenced by another user are never returned.
        Matches on the user (text or embed author) win over track URL matches.
        """
        bot_id = self.messenger.bot_user_id
        if history is None:
            try:
                history = await self.messenger.recent_messages(channel, self.history_limit)
            except SpotibotError as e:
                logger.warning(f"Message discovery failed: {e}")
                return None

        claimed = set(self.service.message_refs().values())
        candidates = [
            message
            for message in history
            if message.author.id == bot_id and str(message.id) not in claimed
        ]

        for message in candidates:
            if references_user(message, user):
                return str(message.id)
        for message in candidates:
            if matches_track(message, track):
                return str(message.id)
        return None

    async def discover_existing_messages(self) -> int:
        """Adopt pre-existing status messages for users without a message ref."""
        channel_id = self.service.get_shared_channel()
        if not channel_id:
            return 0

        missing = [
            user_id
            for user_id in self.service.linked_user_ids()
            if not self.service.get_user_message(user_id)
        ]
        if not missing:
            return 0

        channel = await self.resolve_channel(channel_id)
        if channel is None:
            return 0

        try:
            history = await self.messenger.recent_messages(channel, self.history_limit)
        except SpotibotError as e:
            logger.warning(f"Startup message discovery failed: {e}")
            return 0

        adopted = 0
        for user_id in missing:
            try:
                user = await self.messenger.fetch_user(user_id)
                snapshot = self.service.get_snapshot(user_id)
                found_id = await self.find_existing_message(
                    channel, user, snapshot.track if snapshot else None, history=history
                )
                if found_id:
                    self.service.set_user_message(user_id, found_id)
                    adopted += 1
                    logger.info(f"Discovered existing message {found_id} for {user_id}")
            except Exception as e:
                logger.exception(f"Error discovering message for user {user_id}: {e}")

        return adopted
