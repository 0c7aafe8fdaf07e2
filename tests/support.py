"""Shared fakes for the test suite."""

import time
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

from spotibot.cogs.spotify.messaging import DiscordMessenger
from spotibot.spotify.client import SpotifyAPIClient
from spotibot.spotify.models import LinkedAccount, TokenGrant
from spotibot.spotify.service import SpotifyService

BOT_USER_ID = 999


def now_ms() -> int:
    return int(time.time() * 1000)


def track_url(name: str) -> str:
    return f"https://open.spotify.com/track/{name.replace(' ', '').lower()}"


def playing_payload(
    name: str = "Song A",
    artists: tuple[str, ...] = ("Artist X",),
    progress: int = 10000,
    duration: int = 200000,
    is_playing: bool = True,
    item_type: str = "track",
) -> dict:
    return {
        "is_playing": is_playing,
        "progress_ms": progress,
        "currently_playing_type": item_type,
        "item": {
            "type": item_type,
            "name": name,
            "duration_ms": duration,
            "artists": [{"id": f"id-{a.lower()}", "name": a} for a in artists],
            "album": {"name": "Album", "images": [{"url": "https://i.scdn.co/image/art"}]},
            "external_urls": {"spotify": track_url(name)},
        },
    }


def make_client() -> MagicMock:
    client = MagicMock(spec=SpotifyAPIClient)
    client.get_artist.return_value = {"images": [{"url": "https://i.scdn.co/image/artist"}]}
    client.generate_oauth_url.return_value = "https://accounts.spotify.com/authorize?state=x"
    return client


def make_service(data_dir: Path, client: MagicMock | None = None) -> SpotifyService:
    return SpotifyService(
        client or make_client(),
        data_dir,
        request_delay=0,
        refresh_cooldown=0,
    )


def link(service: SpotifyService, user_id: str, expires_in_s: int = 3600) -> LinkedAccount:
    service.accounts.put(
        LinkedAccount(
            user_id=user_id,
            access_token=f"access-{user_id}",
            refresh_token=f"refresh-{user_id}",
            expires_at=now_ms() + expires_in_s * 1000,
        )
    )
    return service.accounts.get(user_id)  # type: ignore[return-value]


def grant(access: str = "new-access", refresh: str | None = None, expires_in: int = 3600) -> TokenGrant:
    return TokenGrant(access_token=access, refresh_token=refresh, expires_in=expires_in)


def make_user(user_id: str, name: str) -> SimpleNamespace:
    return SimpleNamespace(
        id=int(user_id),
        name=name.lower(),
        display_name=name,
        display_avatar=SimpleNamespace(url=f"https://cdn.discordapp.com/avatars/{user_id}.png"),
    )


def make_messenger(users: dict[str, SimpleNamespace]) -> MagicMock:
    messenger = MagicMock(spec=DiscordMessenger)
    messenger.bot_user_id = BOT_USER_ID
    messenger.fetch_channel.return_value = SimpleNamespace(id=4242)
    messenger.recent_messages.return_value = []

    async def fetch_user(user_id: str):
        return users[user_id]

    messenger.fetch_user.side_effect = fetch_user
    counter = iter(range(1000, 2000))

    async def send(channel, content, embed):
        return str(next(counter))

    messenger.send.side_effect = send
    return messenger


def history_message(
    message_id: int,
    content: str = "",
    embed_url: str | None = None,
    icon_url: str | None = None,
    author_id: int = BOT_USER_ID,
) -> SimpleNamespace:
    embeds = []
    if embed_url or icon_url:
        embeds.append(SimpleNamespace(url=embed_url, author=SimpleNamespace(icon_url=icon_url)))
    return SimpleNamespace(
        id=message_id,
        author=SimpleNamespace(id=author_id),
        content=content,
        embeds=embeds,
    )
