"""Playback poller: fetch, normalize, and record each user's current track."""

import asyncio
import logging
from typing import Any

from cachetools import TTLCache  # type: ignore[import-untyped]

from spotibot.core.errors import (
    AuthExpired,
    AuthFailure,
    RateLimited,
    SpotibotError,
)

from .client import SpotifyAPIClient
from .models import PlaybackSnapshot, Track, now_ms
from .registries import AccountRegistry, SnapshotRegistry
from .tokens import TokenStore

logger = logging.getLogger(__name__)


class PlaybackPoller:
    """Polls the currently-playing endpoint for linked users.

    Users are polled one at a time with ``request_delay`` seconds between
    them to stay under Spotify's rate limit. Any failure for one user
    yields ``None`` for that user and never stops the others.
    """

    def __init__(
        self,
        client: SpotifyAPIClient,
        tokens: TokenStore,
        accounts: AccountRegistry,
        snapshots: SnapshotRegistry,
        request_delay: float = 0.5,
        artist_image_ttl: float = 3600.0,
    ):
        self.client = client
        self.tokens = tokens
        self.accounts = accounts
        self.snapshots = snapshots
        self.request_delay = request_delay
        self._artist_images: TTLCache = TTLCache(maxsize=512, ttl=artist_image_ttl)

    # ==================== Snapshot helpers ====================

    def _mark_idle(self, user_id: str) -> None:
        """Record "nothing playing" while keeping the last fingerprint."""
        previous = self.snapshots.get(user_id)
        self.snapshots.put(
            PlaybackSnapshot(
                user_id=user_id,
                track=None,
                last_updated_at=now_ms(),
                last_track_fingerprint=previous.last_track_fingerprint if previous else None,
            )
        )

    # ==================== Polling ====================

    async def poll_user(self, user_id: str) -> Track | None:
        """Poll one user and overwrite their snapshot.

        Callers that need change detection must read the previous
        fingerprint before calling this.
        """
        try:
            token = await self.tokens.get_valid_token(user_id)
        except AuthFailure as e:
            logger.warning(f"No valid token for user {user_id}: {e}")
            if user_id in self.accounts:
                self._mark_idle(user_id)
            return None
        except SpotibotError as e:
            logger.warning(f"Token lookup failed for user {user_id}: {type(e).__name__}: {e}")
            self._mark_idle(user_id)
            return None

        try:
            token, payload = await self._fetch_playing(user_id, token)
        except RateLimited as e:
            logger.warning(
                f"Rate limited polling user {user_id} (retry after {e.retry_after}s), "
                "skipping until next cycle"
            )
            self._mark_idle(user_id)
            return None
        except AuthFailure as e:
            logger.warning(f"Reactive refresh failed for user {user_id}: {e}")
            if user_id in self.accounts:
                self._mark_idle(user_id)
            return None
        except SpotibotError as e:
            logger.warning(f"Playback fetch failed for user {user_id}: {type(e).__name__}: {e}")
            self._mark_idle(user_id)
            return None

        if payload is None:
            logger.debug(f"User {user_id} has no active playback")
            self._mark_idle(user_id)
            return None

        item = payload.get("item")
        if not item or item.get("type", "track") != "track":
            logger.debug(f"User {user_id} is playing something that is not a track")
            self._mark_idle(user_id)
            return None

        track = Track.from_api(payload)
        track.primary_artist_image_url = await self._artist_image(token, track.primary_artist_id)

        self.snapshots.put(
            PlaybackSnapshot(
                user_id=user_id,
                track=track,
                last_updated_at=now_ms(),
                last_track_fingerprint=track.fingerprint,
            )
        )
        return track

    async def _fetch_playing(
        self, user_id: str, token: str
    ) -> tuple[str, dict[str, Any] | None]:
        """Fetch playback, refreshing and retrying exactly once on AuthExpired."""
        try:
            return token, await self.client.get_currently_playing(token)
        except AuthExpired:
            logger.info(f"Access token rejected for user {user_id}, refreshing and retrying once")

        token = await self.tokens.refresh(user_id)
        try:
            return token, await self.client.get_currently_playing(token)
        except AuthExpired as e:
            raise AuthFailure(f"Token rejected again after refresh for user {user_id}") from e

    async def _artist_image(self, token: str, artist_id: str | None) -> str | None:
        """Best-effort artist image lookup; failures never fail the poll."""
        if not artist_id:
            return None
        if artist_id in self._artist_images:
            return self._artist_images[artist_id]

        try:
            artist = await self.client.get_artist(token, artist_id)
        except SpotibotError as e:
            logger.debug(f"Could not fetch artist image for {artist_id}: {type(e).__name__}")
            return None

        images = artist.get("images") or []
        url = images[0].get("url") if images else None
        self._artist_images[artist_id] = url
        return url

    async def poll_all(self) -> dict[str, Track | None]:
        """Poll every linked user sequentially with a fixed delay between them."""
        user_ids = self.accounts.user_ids()
        results: dict[str, Track | None] = {}
        if not user_ids:
            return results

        logger.debug(f"Polling {len(user_ids)} user(s) for currently playing tracks")
        for index, user_id in enumerate(user_ids):
            if index and self.request_delay > 0:
                await asyncio.sleep(self.request_delay)
            try:
                results[user_id] = await self.poll_user(user_id)
            except Exception as e:
                logger.exception(f"Unexpected error polling user {user_id}: {e}")
                if user_id in self.accounts:
                    self._mark_idle(user_id)
                results[user_id] = None
        return results
