"""Persisted registries for accounts, playback snapshots, channels, and messages.

Each registry wraps one independent JSON document. Cross-document
consistency (a message ref without a channel, say) is repaired by the
startup validator and the reconciliation loop, never enforced here.
"""

import logging

from spotibot.core.storage import JsonDocument

from .models import LinkedAccount, PlaybackSnapshot

logger = logging.getLogger(__name__)


class AccountRegistry:
    """discord user id -> LinkedAccount"""

    def __init__(self, document: JsonDocument):
        self.document = document

    def get(self, user_id: str) -> LinkedAccount | None:
        data = self.document.get(user_id)
        if not data:
            return None
        return LinkedAccount.from_dict(data)

    def put(self, account: LinkedAccount) -> None:
        self.document.set(account.user_id, account.to_dict())

    def remove(self, user_id: str) -> bool:
        return self.document.pop(user_id) is not None

    def user_ids(self) -> list[str]:
        return self.document.keys()

    def __contains__(self, user_id: object) -> bool:
        return user_id in self.document


class SnapshotRegistry:
    """discord user id -> PlaybackSnapshot"""

    def __init__(self, document: JsonDocument):
        self.document = document

    def get(self, user_id: str) -> PlaybackSnapshot | None:
        data = self.document.get(user_id)
        if not data:
            return None
        return PlaybackSnapshot.from_dict(data)

    def put(self, snapshot: PlaybackSnapshot) -> None:
        self.document.set(snapshot.user_id, snapshot.to_dict())

    def remove(self, user_id: str) -> bool:
        return self.document.pop(user_id) is not None

    def last_fingerprint(self, user_id: str) -> str | None:
        snapshot = self.get(user_id)
        return snapshot.last_track_fingerprint if snapshot else None


class ChannelRegistry:
    """discord user id -> channel id, in insertion order"""

    def __init__(self, document: JsonDocument):
        self.document = document

    def set(self, user_id: str, channel_id: str) -> None:
        self.document.set(user_id, channel_id)

    def get(self, user_id: str) -> str | None:
        return self.document.get(user_id)

    def remove(self, user_id: str) -> bool:
        return self.document.pop(user_id) is not None

    def all(self) -> dict[str, str]:
        return dict(self.document.items())

    def users_for_channel(self, channel_id: str) -> list[str]:
        return [user_id for user_id, cid in self.document.items() if cid == channel_id]

    def shared_channel(self) -> str | None:
        """The effective shared channel: the first configured entry."""
        for _, channel_id in self.document.items():
            return str(channel_id)
        return None


class MessageRegistry:
    """discord user id -> outbound status message id"""

    def __init__(self, document: JsonDocument):
        self.document = document

    def set(self, user_id: str, message_id: str | None) -> None:
        if message_id:
            self.document.set(user_id, message_id)
        else:
            self.document.pop(user_id)

    def get(self, user_id: str) -> str | None:
        return self.document.get(user_id)

    def clear(self, user_id: str) -> bool:
        return self.document.pop(user_id) is not None

    def all(self) -> dict[str, str]:
        return dict(self.document.items())
