"""In-memory installation token cache with single-flight refresh.

Per installation the cache moves through::

    UNCACHED -> PENDING -> CACHED -> (near expiry) -> PENDING -> CACHED ...

A cached token is served while ``now < expires_at - safety_margin``. Once
that stops holding, the first caller for the installation takes its lock
and performs one exchange; concurrent callers for the same installation
wait on the lock and receive the refreshed token. Different installations
never share a lock.

The cache lives and dies with the process. Tokens are never written to
disk, and separate helper processes (e.g. parallel submodule fetches) each
perform their own exchange.

Thread Safety:
    All public methods are safe to call from multiple threads.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from pydantic import SecretStr

from git_app_auth.github.client import GitHubAppClient

log = structlog.get_logger(__name__)

DEFAULT_SAFETY_MARGIN = timedelta(minutes=5)

AssertionSource = Callable[[], str]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class CachedToken:
    """Installation token held in process memory only."""

    installation_id: int
    value: SecretStr = field(repr=False)
    expires_at: datetime

    def is_fresh(self, now: datetime, margin: timedelta) -> bool:
        return now < self.expires_at - margin


class InstallationTokenCache:
    """Cache of installation tokens for one GitHub host.

    Attributes:
        exchanges: Number of token exchanges performed, for diagnostics

    Example:
        >>> cache = InstallationTokenCache(GitHubAppClient("github.com"))
        >>> token = cache.get_token(789012, lambda: minter.mint(12345, pem))
    """

    def __init__(
        self,
        client: GitHubAppClient,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the cache.

        Args:
            client: API client used for exchanges
            safety_margin: How long before expiry a token stops being served
            clock: Source of the current aware UTC time
        """
        self._client = client
        self.safety_margin = safety_margin
        self._clock = clock
        self._entries: dict[int, CachedToken] = {}
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.exchanges = 0

    def _lock_for(self, installation_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(installation_id, threading.Lock())

    def _fresh_entry(self, installation_id: int) -> CachedToken | None:
        entry = self._entries.get(installation_id)
        if entry is not None and entry.is_fresh(self._clock(), self.safety_margin):
            return entry
        return None

    def peek(self, installation_id: int) -> CachedToken | None:
        """Cached entry for an installation, fresh or not, without refreshing."""
        return self._entries.get(installation_id)

    def get_token(self, installation_id: int, assertion_source: AssertionSource) -> str:
        """Installation token, from cache or a fresh exchange.

        Args:
            installation_id: Installation to get a token for
            assertion_source: Mints a fresh App assertion; only called on a miss

        Returns:
            Token value

        Raises:
            AssertionSigningError: If the assertion cannot be minted
            ExchangeError: If the exchange fails; nothing is cached
        """
        entry = self._fresh_entry(installation_id)
        if entry is not None:
            log.debug("token_cache_hit", installation_id=installation_id)
            return entry.value.get_secret_value()

        with self._lock_for(installation_id):
            # Another caller may have refreshed while we waited
            entry = self._fresh_entry(installation_id)
            if entry is not None:
                log.debug("token_cache_hit_after_wait", installation_id=installation_id)
                return entry.value.get_secret_value()

            log.debug("token_cache_miss", installation_id=installation_id)
            issued = self._client.create_installation_token(assertion_source(), installation_id)
            self.exchanges += 1

            entry = CachedToken(installation_id=installation_id, value=issued.token, expires_at=issued.expires_at)
            self._entries[installation_id] = entry
            if not entry.is_fresh(self._clock(), self.safety_margin):
                log.warning(
                    "token_lifetime_below_margin",
                    installation_id=installation_id,
                    expires_at=str(entry.expires_at),
                )
            return entry.value.get_secret_value()

    def invalidate(self, installation_id: int) -> None:
        """Drop the cached token for an installation."""
        with self._lock_for(installation_id):
            self._entries.pop(installation_id, None)

    def clear(self) -> None:
        with self._locks_guard:
            self._entries.clear()
