import logging
import threading
import time
from typing import Any, Callable, Mapping

import requests

from ..config import Config
from ..errors import (
    HttpError,
    NotFoundError,
    RateLimitError,
    TransportError,
)

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
DEFAULT_RESET_SECONDS = 60.0
RATE_LIMIT_STATUSES = (403, 429)


def compute_reset_at(
    headers: Mapping[str, str], now: float
) -> float:
    """Return the epoch second after which a rate-limited call may be retried.

    ``Retry-After`` (seconds) wins over ``X-RateLimit-Reset`` (epoch).
    Unparseable or absent headers fall back to ``now + 60``.
    """
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return now + int(retry_after)
        except ValueError:
            pass
    reset = headers.get("X-RateLimit-Reset")
    if reset:
        try:
            return float(int(reset))
        except ValueError:
            pass
    return now + DEFAULT_RESET_SECONDS


def is_rate_limited(status: int, headers: Mapping[str, str]) -> bool:
    """GitHub signals primary and secondary limits with 403 or 429 plus headers."""
    if status not in RATE_LIMIT_STATUSES:
        return False
    return (
        headers.get("X-RateLimit-Remaining") == "0"
        or bool(headers.get("Retry-After"))
        or bool(headers.get("X-RateLimit-Reset"))
    )


class GistClient:
    """Blocking client for the Gist REST API.

    The token is passed per call and never stored on the client, so a
    single instance can serve queued jobs that load the token on demand.
    """

    def __init__(
        self,
        config: Config,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.base_url = config.api_url.rstrip("/")
        self._clock = clock
        self._thread_local = threading.local()

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
            }
        )
        return session

    def _request(
        self,
        method: str,
        path: str,
        token: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an authenticated API request and return the parsed JSON body.

        Raises:
            RateLimitError: 403/429 with rate-limit headers.
            NotFoundError: 404.
            HttpError: Any other non-2xx status.
            TransportError: Network failure or invalid JSON.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self._get_session().request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                json=body,
                params=params,
                timeout=(10, self.config.request_timeout),
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if status >= 400:
            headers = response.headers
            if is_rate_limited(status, headers):
                reset_at = compute_reset_at(headers, self._clock())
                raise RateLimitError(
                    f"GitHub rate limit hit ({status}).", reset_at
                )
            logger.error("Failed to %s %s: %s", method, path, status)
            if status == 404:
                raise NotFoundError(f"{method} {path}: not found")
            raise HttpError(f"HTTP error! status: {status}", status)

        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"{method} {path} returned invalid JSON: {e}"
            ) from e

    def get_gist(self, gist_id: str, token: str) -> dict[str, Any]:
        """Fetch a gist with full file contents."""
        return self._request("GET", f"/gists/{gist_id}", token)

    def create_gist(self, body: dict[str, Any], token: str) -> dict[str, Any]:
        """Create a gist. The response carries the new ``id``."""
        return self._request("POST", "/gists", token, body=body)

    def update_gist(
        self, gist_id: str, body: dict[str, Any], token: str
    ) -> dict[str, Any]:
        return self._request("PATCH", f"/gists/{gist_id}", token, body=body)

    def delete_gist(self, gist_id: str, token: str) -> None:
        self._request("DELETE", f"/gists/{gist_id}", token)

    def list_gists(
        self, token: str, page: int = 1, per_page: int = 100
    ) -> list[dict[str, Any]]:
        """List the authenticated user's gists (file contents omitted)."""
        result = self._request(
            "GET",
            "/gists",
            token,
            params={"per_page": per_page, "page": page},
        )
        return result or []

    def rate_limit(self, token: str) -> dict[str, Any]:
        """Return the core rate-limit status. Does not count against the limit."""
        result = self._request("GET", "/rate_limit", token) or {}
        return result.get("resources", {}).get("core", {})
