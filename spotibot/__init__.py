"""Spotibot: Spotify now-playing status for Discord."""

BOT_NAME = "spotibot"
BOT_VERSION = "0.1.0"
