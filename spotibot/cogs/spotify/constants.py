"""Spotify feature constants."""

import discord

# Theme
SPOTIFY_COLOR = discord.Color(0x1DB954)

# Text
NOW_PLAYING_AUTHOR = "Now Playing on Spotify"
LISTENING_MARKER = "is listening to"
PING_PREFIX = "@everyone heads up, {artist} just came on"

# Assets
SPOTIFY_ICON = "https://cdn.jsdelivr.net/npm/simple-icons@v9/icons/spotify.svg"

# Background tasks
OAUTH_SWEEP_MINUTES = 10
