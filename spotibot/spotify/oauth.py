"""Pending OAuth states: ``state -> {user_id, created_at}``, single use, with TTL."""

import logging
import secrets

from spotibot.core.storage import JsonDocument

from .models import now_ms

logger = logging.getLogger(__name__)


class OAuthStateStore:
    def __init__(self, document: JsonDocument, ttl_seconds: int = 600):
        self.document = document
        self.ttl_ms = ttl_seconds * 1000

    def _is_expired(self, entry: dict, now: int) -> bool:
        return now - int(entry.get("created_at", 0)) > self.ttl_ms

    def create(self, user_id: str) -> str:
        state = secrets.token_hex(32)
        self.document.set(state, {"user_id": user_id, "created_at": now_ms()})
        return state

    def peek(self, state: str) -> str | None:
        """Return the user waiting on *state* without consuming it."""
        entry = self.document.get(state)
        if not isinstance(entry, dict) or self._is_expired(entry, now_ms()):
            return None
        return str(entry["user_id"])

    def consume(self, state: str) -> str | None:
        """Return and delete the user for *state*; unknown or expired yields None."""
        entry = self.document.pop(state)
        if not isinstance(entry, dict):
            return None
        if self._is_expired(entry, now_ms()):
            logger.info("Rejected expired OAuth state")
            return None
        return str(entry["user_id"])

    def sweep(self) -> int:
        """Delete expired (or malformed) states, returning how many were removed."""
        now = now_ms()
        stale = [
            state
            for state, entry in self.document.items()
            if not isinstance(entry, dict) or self._is_expired(entry, now)
        ]
        removed = self.document.remove_many(stale)
        if removed:
            logger.info(f"Swept {removed} expired OAuth state(s)")
        return removed
