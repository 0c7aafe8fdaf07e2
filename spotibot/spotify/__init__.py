"""Spotify integration: API client, tokens, polling, and persisted state."""

from .client import SpotifyAPIClient
from .models import LinkedAccount, PlaybackSnapshot, TimeRange, TokenGrant, TopTrack, Track
from .service import SpotifyService

__all__ = [
    "LinkedAccount",
    "PlaybackSnapshot",
    "SpotifyAPIClient",
    "SpotifyService",
    "TimeRange",
    "TokenGrant",
    "TopTrack",
    "Track",
]
