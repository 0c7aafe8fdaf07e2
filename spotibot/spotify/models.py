"""Data models for linked accounts, playback snapshots, and top tracks."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def make_fingerprint(name: str, artist_names: str) -> str:
    return f"{name}|{artist_names}"


class TimeRange(str, Enum):
    """Spotify top-items time ranges."""

    SHORT_TERM = "short_term"
    MEDIUM_TERM = "medium_term"
    LONG_TERM = "long_term"

    @property
    def label(self) -> str:
        return {
            TimeRange.SHORT_TERM: "This Month",
            TimeRange.MEDIUM_TERM: "This Year",
            TimeRange.LONG_TERM: "All Time",
        }[self]


@dataclass
class TokenGrant:
    """Token endpoint response."""

    access_token: str
    refresh_token: str | None
    expires_in: int

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> TokenGrant:
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=int(data.get("expires_in", 3600)),
        )


@dataclass
class LinkedAccount:
    """OAuth credentials of one linked Discord user. ``expires_at`` is epoch ms."""

    user_id: str
    access_token: str
    refresh_token: str
    expires_at: int

    def expires_within(self, margin_ms: int, now: int | None = None) -> bool:
        current = now_ms() if now is None else now
        return current >= self.expires_at - margin_ms

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkedAccount:
        return cls(
            user_id=str(data["user_id"]),
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=int(data.get("expires_at", 0)),
        )


@dataclass
class Track:
    """Normalized currently-playing track."""

    name: str
    artist_names: str
    primary_artist_id: str | None
    primary_artist_image_url: str | None
    album_name: str | None
    external_url: str
    artwork_url: str | None
    duration_ms: int
    progress_ms: int
    is_playing: bool

    @property
    def fingerprint(self) -> str:
        return make_fingerprint(self.name, self.artist_names)

    @property
    def progress_percent(self) -> int:
        if self.duration_ms <= 0:
            return 0
        return int(self.progress_ms * 100 // self.duration_ms)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Track:
        """Build from a currently-playing payload whose item is a track."""
        item = payload["item"]
        artists = item.get("artists") or []
        album = item.get("album") or {}
        images = album.get("images") or []
        return cls(
            name=item.get("name", ""),
            artist_names=", ".join(a.get("name", "") for a in artists),
            primary_artist_id=artists[0].get("id") if artists else None,
            primary_artist_image_url=None,
            album_name=album.get("name"),
            external_url=(item.get("external_urls") or {}).get("spotify", ""),
            artwork_url=images[0].get("url") if images else None,
            duration_ms=int(item.get("duration_ms") or 0),
            progress_ms=int(payload.get("progress_ms") or 0),
            is_playing=bool(payload.get("is_playing", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Track:
        return cls(**data)


@dataclass
class PlaybackSnapshot:
    """Last observed playback state of a user; overwritten on every poll."""

    user_id: str
    track: Track | None
    last_updated_at: int
    last_track_fingerprint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "track": self.track.to_dict() if self.track else None,
            "last_updated_at": self.last_updated_at,
            "last_track_fingerprint": self.last_track_fingerprint,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlaybackSnapshot:
        track = data.get("track")
        return cls(
            user_id=str(data["user_id"]),
            track=Track.from_dict(track) if track else None,
            last_updated_at=int(data.get("last_updated_at", 0)),
            last_track_fingerprint=data.get("last_track_fingerprint"),
        )


@dataclass
class TopTrack:
    name: str
    artist_names: str
    album_name: str
    external_url: str
    artwork_url: str | None
    popularity: int

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> TopTrack:
        album = item.get("album") or {}
        images = album.get("images") or []
        return cls(
            name=item.get("name", ""),
            artist_names=", ".join(a.get("name", "") for a in item.get("artists") or []),
            album_name=album.get("name", ""),
            external_url=(item.get("external_urls") or {}).get("spotify", ""),
            artwork_url=images[0].get("url") if images else None,
            popularity=int(item.get("popularity") or 0),
        )
