"""Spotify Web API client.

Token types:
- User Access Token: obtained through the authorization-code flow, stored
  per linked Discord user, refreshed with the user's refresh token.

Every non-2xx response is classified once in ``_raise_for_status`` and every
body is decoded by ``_decode``, so callers only ever see the error taxonomy
in ``spotibot.core.errors``.
"""

import logging
from typing import Any, cast
from urllib.parse import urlencode

import httpx

from spotibot.core.errors import (
    AuthExpired,
    AuthRevoked,
    NotFound,
    RateLimited,
    Transient,
)

from .models import TimeRange, TokenGrant

logger = logging.getLogger(__name__)

API_BASE = "https://api.spotify.com/v1"
ACCOUNTS_BASE = "https://accounts.spotify.com"


class SpotifyAPIClient:
    """Client for interacting with the Spotify Web API.

    Manages a shared httpx client for connection reuse.
    """

    DEFAULT_SCOPES = [
        "user-read-currently-playing",
        "user-read-playback-state",
        "user-top-read",
    ]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http: httpx.AsyncClient | None = None,
    ):
        if not client_id or not client_secret:
            raise ValueError("Spotify client_id and client_secret are required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

        # Shared HTTP client, reuses TCP connections across requests
        self._http = http or httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on shutdown."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_status(response: httpx.Response, *, token_endpoint: bool = False) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return

        if status == 429:
            retry_after: float | None
            try:
                retry_after = float(response.headers.get("Retry-After", ""))
            except ValueError:
                retry_after = None
            raise RateLimited(f"HTTP 429 from {response.url.path}", retry_after=retry_after)

        if token_endpoint:
            try:
                error = response.json().get("error", "")
            except (ValueError, AttributeError):
                error = ""
            # Bad client credentials are a deployment problem, not a revoked user
            if status == 400 and error == "invalid_grant":
                raise AuthRevoked("Token endpoint rejected the grant: invalid_grant")
            raise Transient(f"Token endpoint returned HTTP {status}: {error or 'unknown'}")

        if status == 401:
            raise AuthExpired(f"HTTP 401 from {response.url.path}")
        if status == 404:
            raise NotFound(f"HTTP 404 from {response.url.path}")
        raise Transient(f"HTTP {status} from {response.url.path}")

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise Transient(f"Timeout calling {url}") from e
        except httpx.HTTPError as e:
            raise Transient(f"Transport error calling {url}: {e}") from e

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise Transient(f"Malformed JSON from {response.url.path}") from e
        if not isinstance(payload, dict):
            raise Transient(f"Unexpected payload from {response.url.path}")
        return cast(dict[str, Any], payload)

    async def _api_get(
        self, path: str, token: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        response = await self._send(
            "GET",
            f"{API_BASE}/{path}",
            params=params,
            headers={"Authorization": f"Bearer {token}"},
        )
        self._raise_for_status(response)
        return response

    async def _token_request(self, data: dict[str, str]) -> TokenGrant:
        response = await self._send(
            "POST",
            f"{ACCOUNTS_BASE}/api/token",
            data={
                **data,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        self._raise_for_status(response, token_endpoint=True)

        payload = self._decode(response)
        if not payload.get("access_token"):
            raise Transient("No access_token in token response")
        return TokenGrant.from_api(payload)

    # ------------------------------------------------------------------
    # OAuth flow
    # ------------------------------------------------------------------

    def generate_oauth_url(self, state: str, scopes: list[str] | None = None) -> str:
        """Generate Spotify OAuth authorization URL."""
        query = urlencode(
            {
                "client_id": self.client_id,
                "response_type": "code",
                "redirect_uri": self.redirect_uri,
                "scope": " ".join(scopes or self.DEFAULT_SCOPES),
                "state": state,
            }
        )
        return f"{ACCOUNTS_BASE}/authorize?{query}"

    async def exchange_code_for_token(self, code: str) -> TokenGrant:
        """Exchange an authorization code for access and refresh tokens."""
        grant = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )
        if not grant.refresh_token:
            raise Transient("No refresh_token in code exchange response")
        return grant

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Refresh a user's access token.

        Spotify may rotate the refresh token; when it does not, the returned
        grant carries ``refresh_token=None`` and the caller keeps the old one.
        """
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    # ------------------------------------------------------------------
    # Player and library
    # ------------------------------------------------------------------

    async def get_currently_playing(self, token: str) -> dict[str, Any] | None:
        """Return the currently-playing payload, or None when nothing is active."""
        response = await self._api_get(
            "me/player/currently-playing",
            token,
            params={"additional_types": "track,episode"},
        )
        if response.status_code == 204 or not response.content:
            return None
        return self._decode(response)

    async def get_artist(self, token: str, artist_id: str) -> dict[str, Any]:
        response = await self._api_get(f"artists/{artist_id}", token)
        return self._decode(response)

    async def get_top_tracks(
        self, token: str, time_range: TimeRange, limit: int = 10
    ) -> list[dict[str, Any]]:
        response = await self._api_get(
            "me/top/tracks",
            token,
            params={"time_range": time_range.value, "limit": limit},
        )
        return cast(list[dict[str, Any]], self._decode(response).get("items") or [])
