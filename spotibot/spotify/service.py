"""Spotify service facade.

One explicitly constructed instance per process, owned by the entry point
and injected into the bot, the cog, and the HTTP callback server.
"""

from __future__ import annotations

import logging
from pathlib import Path

from spotibot.config import Settings
from spotibot.core.errors import NotLinked
from spotibot.core.storage import JsonDocument

from .client import SpotifyAPIClient
from .models import LinkedAccount, PlaybackSnapshot, TimeRange, TokenGrant, TopTrack, Track
from .oauth import OAuthStateStore
from .poller import PlaybackPoller
from .registries import AccountRegistry, ChannelRegistry, MessageRegistry, SnapshotRegistry
from .tokens import TokenStore

logger = logging.getLogger(__name__)

USERS_FILE = "spotify-users.json"
PLAYING_FILE = "spotify-playing.json"
CHANNELS_FILE = "spotify-channels.json"
MESSAGES_FILE = "spotify-messages.json"
STATES_FILE = "oauth-states.json"


class SpotifyService:
    """Public contract used by the command layer, the callback server, and the loop."""

    def __init__(
        self,
        client: SpotifyAPIClient,
        data_dir: Path,
        *,
        request_delay: float = 0.5,
        refresh_cooldown: float = 0.75,
        oauth_state_ttl: int = 600,
    ):
        self.client = client
        self.data_dir = data_dir

        self.accounts = AccountRegistry(JsonDocument(data_dir / USERS_FILE))
        self.snapshots = SnapshotRegistry(JsonDocument(data_dir / PLAYING_FILE))
        self.channels = ChannelRegistry(JsonDocument(data_dir / CHANNELS_FILE))
        self.messages = MessageRegistry(JsonDocument(data_dir / MESSAGES_FILE))
        self.states = OAuthStateStore(JsonDocument(data_dir / STATES_FILE), oauth_state_ttl)

        self.tokens = TokenStore(
            client,
            self.accounts,
            refresh_cooldown=refresh_cooldown,
            on_revoked=self._on_revoked,
        )
        self.poller = PlaybackPoller(
            client,
            self.tokens,
            self.accounts,
            self.snapshots,
            request_delay=request_delay,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> SpotifyService:
        client = SpotifyAPIClient(
            settings.spotify_client_id,
            settings.spotify_client_secret,
            settings.spotify_redirect_uri,
        )
        return cls(
            client,
            settings.data_dir,
            request_delay=settings.request_delay,
            refresh_cooldown=settings.refresh_cooldown,
            oauth_state_ttl=settings.oauth_state_ttl,
        )

    async def close(self) -> None:
        await self.client.close()

    # ==================== Linking ====================

    def is_linked(self, user_id: str) -> bool:
        return user_id in self.accounts

    def linked_user_ids(self) -> list[str]:
        return self.accounts.user_ids()

    def link_user(self, user_id: str, grant: TokenGrant) -> LinkedAccount:
        account = self.tokens.store_grant(user_id, grant)
        logger.info(f"Linked Spotify account for user {user_id}")
        return account

    def unlink_user(self, user_id: str) -> bool:
        """Delete account, snapshot, message ref, and the user's own channel entry.

        Other users' channel entries are untouched, so a shared channel
        configured by someone else keeps working.
        """
        removed = self.accounts.remove(user_id)
        if removed:
            self.snapshots.remove(user_id)
            self.messages.clear(user_id)
            self.channels.remove(user_id)
            logger.info(f"Unlinked Spotify account for user {user_id}")
        return removed

    async def _on_revoked(self, user_id: str) -> None:
        self.unlink_user(user_id)

    def begin_link(self, user_id: str) -> str:
        """Create a pending OAuth state and return the authorization URL."""
        state = self.states.create(user_id)
        return self.client.generate_oauth_url(state)

    async def complete_link(self, state: str, code: str) -> str | None:
        """Finish the redirect flow. Returns the linked user id, or None for a bad state.

        The state is consumed only after the code exchange succeeds.
        """
        user_id = self.states.peek(state)
        if user_id is None:
            return None
        grant = await self.client.exchange_code_for_token(code)
        self.states.consume(state)
        self.link_user(user_id, grant)
        return user_id

    async def link_with_code(self, user_id: str, code: str) -> LinkedAccount:
        """Manual fallback: exchange a pasted authorization code."""
        grant = await self.client.exchange_code_for_token(code)
        return self.link_user(user_id, grant)

    def sweep_oauth_states(self) -> int:
        return self.states.sweep()

    # ==================== Playback ====================

    async def get_currently_playing(self, user_id: str) -> Track | None:
        return await self.poller.poll_user(user_id)

    async def poll_all_users(self) -> dict[str, Track | None]:
        return await self.poller.poll_all()

    def get_snapshot(self, user_id: str) -> PlaybackSnapshot | None:
        return self.snapshots.get(user_id)

    def get_last_fingerprint(self, user_id: str) -> str | None:
        return self.snapshots.last_fingerprint(user_id)

    async def get_top_tracks(
        self, user_id: str, time_range: TimeRange, limit: int = 10
    ) -> list[TopTrack]:
        """Top tracks for *time_range*. Raises on any failure."""
        if not self.is_linked(user_id):
            raise NotLinked(f"User {user_id} is not linked")
        token = await self.tokens.get_valid_token(user_id)
        items = await self.client.get_top_tracks(token, time_range, limit)
        return [TopTrack.from_api(item) for item in items]

    # ==================== Channels ====================

    def set_user_channel(self, user_id: str, channel_id: str) -> None:
        self.channels.set(user_id, channel_id)

    def remove_user_channel(self, user_id: str) -> bool:
        """Remove the user's channel entry and its message ref."""
        removed = self.channels.remove(user_id)
        if removed:
            self.messages.clear(user_id)
        return removed

    def remove_channel_everywhere(self, channel_id: str) -> int:
        """Drop every entry pointing at *channel_id* (the channel is gone)."""
        users = self.channels.users_for_channel(channel_id)
        for user_id in users:
            self.remove_user_channel(user_id)
        return len(users)

    def get_user_channel(self, user_id: str) -> str | None:
        return self.channels.get(user_id)

    def get_all_channels(self) -> dict[str, str]:
        return self.channels.all()

    def get_shared_channel(self) -> str | None:
        return self.channels.shared_channel()

    # ==================== Messages ====================

    def set_user_message(self, user_id: str, message_id: str | None) -> None:
        self.messages.set(user_id, message_id)

    def get_user_message(self, user_id: str) -> str | None:
        return self.messages.get(user_id)

    def clear_user_message(self, user_id: str) -> bool:
        return self.messages.clear(user_id)

    def message_refs(self) -> dict[str, str]:
        return self.messages.all()
