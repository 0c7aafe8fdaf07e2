"""Per-user access token lifecycle."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from spotibot.core.errors import AuthRevoked, NotLinked

from .client import SpotifyAPIClient
from .models import LinkedAccount, TokenGrant, now_ms
from .registries import AccountRegistry

logger = logging.getLogger(__name__)

RevokedCallback = Callable[[str], Awaitable[None]]


class TokenStore:
    """Hands out usable access tokens, refreshing them when necessary.

    ``get_valid_token`` is not side-effect free: a refresh rejected by the
    authorization server deletes the account (through ``on_revoked``) and
    raises ``AuthRevoked``.
    """

    REFRESH_MARGIN_MS = 60_000

    def __init__(
        self,
        client: SpotifyAPIClient,
        accounts: AccountRegistry,
        refresh_cooldown: float = 0.75,
        on_revoked: RevokedCallback | None = None,
    ):
        self.client = client
        self.accounts = accounts
        self.refresh_cooldown = refresh_cooldown
        self.on_revoked = on_revoked
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, user_id: str) -> asyncio.Lock:
        if user_id not in self._locks:
            self._locks[user_id] = asyncio.Lock()
        return self._locks[user_id]

    def store_grant(self, user_id: str, grant: TokenGrant) -> LinkedAccount:
        """Create or update the account from a token endpoint response."""
        existing = self.accounts.get(user_id)
        refresh_token = grant.refresh_token or (existing.refresh_token if existing else "")
        account = LinkedAccount(
            user_id=user_id,
            access_token=grant.access_token,
            refresh_token=refresh_token,
            expires_at=now_ms() + grant.expires_in * 1000,
        )
        self.accounts.put(account)
        return account

    async def get_valid_token(self, user_id: str) -> str:
        """Return an access token with at least a minute of lifetime left."""
        async with self._get_lock(user_id):
            account = self.accounts.get(user_id)
            if account is None:
                raise NotLinked(f"User {user_id} is not linked")

            if not account.expires_within(self.REFRESH_MARGIN_MS):
                return account.access_token

            return await self._refresh(account)

    async def refresh(self, user_id: str) -> str:
        """Force a refresh regardless of the stored expiry."""
        async with self._get_lock(user_id):
            account = self.accounts.get(user_id)
            if account is None:
                raise NotLinked(f"User {user_id} is not linked")
            return await self._refresh(account)

    async def _refresh(self, account: LinkedAccount) -> str:
        user_id = account.user_id
        logger.info(f"Refreshing Spotify access token for user {user_id}")
        try:
            grant = await self.client.refresh_access_token(account.refresh_token)
        except AuthRevoked:
            logger.warning(f"Refresh token rejected for user {user_id}, unlinking account")
            await self._revoke(user_id)
            raise

        updated = self.store_grant(user_id, grant)
        logger.info(f"Token refreshed for user {user_id} (expires in {grant.expires_in}s)")

        # Space out bursts of refreshes across users
        if self.refresh_cooldown > 0:
            await asyncio.sleep(self.refresh_cooldown)
        return updated.access_token

    async def _revoke(self, user_id: str) -> None:
        if self.on_revoked is not None:
            await self.on_revoked(user_id)
        else:
            self.accounts.remove(user_id)
