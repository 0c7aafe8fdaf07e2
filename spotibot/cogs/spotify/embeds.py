"""Status message and embed rendering."""

from typing import Any

import discord

from spotibot.spotify.models import TopTrack, Track

from .constants import LISTENING_MARKER, NOW_PLAYING_AUTHOR, SPOTIFY_COLOR, SPOTIFY_ICON

MEDALS = ["🥇", "🥈", "🥉"]


def format_duration(ms: int) -> str:
    """Format milliseconds as m:ss"""
    seconds = max(ms, 0) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def display_name(user: Any) -> str:
    return getattr(user, "display_name", None) or getattr(user, "name", "") or str(user.id)


def build_status_content(user: Any, track: Track) -> str:
    # Display name instead of a mention so nobody is pinged on every edit
    return f"{display_name(user)} {LISTENING_MARKER} **{track.name}** by {track.artist_names}"


def build_track_embed(track: Track, user: Any) -> discord.Embed:
    """Now-playing embed for one user"""
    description = f"**{track.artist_names}**"
    if track.album_name:
        description += f" • {track.album_name}"

    embed = discord.Embed(
        title=track.name,
        url=track.external_url or None,
        description=description,
        color=SPOTIFY_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_author(name=NOW_PLAYING_AUTHOR, icon_url=user.display_avatar.url)

    state = "Playing" if track.is_playing else "Paused"
    embed.set_footer(
        text=(
            f"{format_duration(track.progress_ms)} / {format_duration(track.duration_ms)}"
            f" • {track.progress_percent}% • {state}"
        ),
        icon_url=track.primary_artist_image_url or SPOTIFY_ICON,
    )

    if track.artwork_url:
        embed.set_thumbnail(url=track.artwork_url)

    return embed


def build_top_tracks_embed(tracks: list[TopTrack], user: Any, period_name: str) -> discord.Embed:
    lines = []
    for index, track in enumerate(tracks):
        rank = MEDALS[index] if index < len(MEDALS) else f"{index + 1}."
        lines.append(
            f"{rank} **[{track.name}]({track.external_url})**\n   {track.artist_names} • {track.album_name}"
        )

    embed = discord.Embed(
        title=f"🎵 Top {len(tracks)} Tracks - {period_name}",
        description="\n\n".join(lines),
        color=SPOTIFY_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_author(name=f"{display_name(user)}'s Top Tracks", icon_url=user.display_avatar.url)
    embed.set_footer(text="Spotify Top Tracks")

    if tracks and tracks[0].artwork_url:
        embed.set_thumbnail(url=tracks[0].artwork_url)

    return embed
