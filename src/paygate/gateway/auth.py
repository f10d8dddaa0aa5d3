import logging
import threading
import time
from collections.abc import Callable

from paygate.errors import NetworkError

logger = logging.getLogger(__name__)

# Refresh this many seconds before the provider-declared expiry.
DEFAULT_REFRESH_MARGIN = 60.0

TokenFetcher = Callable[[], tuple[str, float]]


class OAuthTokenCache:
    """Per-gateway cache for a short-lived bearer token.

    ``fetch`` returns ``(access_token, expires_in_seconds)``. Concurrent
    callers that find the token stale wait on one lock, so only the first
    of them refreshes and the rest reuse its result.
    """

    def __init__(
        self,
        fetch: TokenFetcher,
        gateway: str | None = None,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self.gateway = gateway
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()
        self.refresh_count = 0

    def _valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def get(self) -> str:
        """Return a usable token, refreshing it when missing or near expiry.

        The refresh is retried once on NetworkError; any other error, or a
        second NetworkError, propagates.
        """
        if self._valid():
            return self._token
        with self._lock:
            if self._valid():
                return self._token
            try:
                token, expires_in = self._fetch()
            except NetworkError:
                logger.warning("Token refresh failed, retrying once", extra={"gateway": self.gateway})
                token, expires_in = self._fetch()
            self._token = token
            self._expires_at = self._clock() + max(float(expires_in) - self.refresh_margin, 0.0)
            self.refresh_count += 1
            logger.debug(
                "Refreshed access token",
                extra={"gateway": self.gateway, "expires_in": expires_in},
            )
            return token

    def invalidate(self) -> None:
        """Drop the cached token, e.g. after the provider answered 401."""
        with self._lock:
            self._token = None
            self._expires_at = 0.0
