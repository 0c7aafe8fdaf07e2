"""Error taxonomy shared by the Spotify client and the Discord adapter.

Raw HTTP/Discord errors are classified once, at the client boundary, into
these types. Everything downstream matches on the type only.
"""


class SpotibotError(Exception):
    """Base class for classified integration errors."""


class AuthFailure(SpotibotError):
    """No usable access token exists for the user."""


class NotLinked(AuthFailure):
    """The user has no linked Spotify account."""


class AuthRevoked(AuthFailure):
    """The authorization server rejected the refresh token."""


class AuthExpired(SpotibotError):
    """The access token was rejected; one refresh-and-retry is allowed."""


class RateLimited(SpotibotError):
    """The remote API asked us to slow down."""

    def __init__(self, message: str = "rate limited", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class NotFound(SpotibotError):
    """The referenced resource (channel, message, user, artist) is gone."""


class Transient(SpotibotError):
    """Any other network or server failure."""
