"""Exception types shared by the sync engine.

Convention:
- ``ConfigurationError`` -- the user has to supply something (token,
  passphrase, settings) before the flow can run.
- ``CryptoError`` -- bad passphrase or corrupted envelope.
- ``RemoteError`` and subclasses -- failures talking to the Gist API.
  Only ``RateLimitError`` is transient; mutating calls that hit it are
  queued by the repository.
- ``PermissionDeniedError`` -- the user declined access to an origin.

Flows catch these and turn them into terminal progress events; tool
handlers turn them into structured error responses.
"""

from __future__ import annotations


class CookieJarError(Exception):
    """Base class for every error raised by cookiejar_sync."""


class ConfigurationError(CookieJarError):
    """Missing or invalid token, passphrase, or settings."""


class CryptoError(CookieJarError):
    """Encryption or decryption could not be performed."""


class DecryptionError(CryptoError):
    """Authentication tag check failed or the envelope is unreadable."""


class RemoteError(CookieJarError):
    """Base class for Gist API failures."""


class RateLimitError(RemoteError):
    """The API refused the call because of rate limiting.

    Attributes:
        reset_at: Epoch seconds after which the call may be retried.
    """

    def __init__(self, message: str, reset_at: float) -> None:
        super().__init__(message)
        self.reset_at = reset_at


class NotFoundError(RemoteError):
    """The requested document does not exist (HTTP 404)."""


class TransportError(RemoteError):
    """Network failure or an unparseable response body."""


class HttpError(RemoteError):
    """Any other non-2xx response.

    Attributes:
        status: HTTP status code returned by the API.
    """

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status


class PermissionDeniedError(CookieJarError):
    """Access to an origin was declined."""

    def __init__(self, origin: str) -> None:
        super().__init__(f"Permission denied for {origin}")
        self.origin = origin
