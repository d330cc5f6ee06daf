"""
Auth token caching with a stale-while-refreshing grace window.

ConsumerView tokens last about 30 minutes, and every login revokes the token
issued before it. If several callers noticed expiry at the same moment and all
logged in, each login would invalidate the others' tokens. The cache therefore
lets exactly one caller hold a refresh lease per key, while everyone else is
served the just-expired token for a short grace window.

States per key:
- FRESH: a live token is stored
- STALE_SERVING: expired, a refresh is in flight, old token still within grace
- REFRESHING: a refresh is in flight and there is nothing servable
- EXPIRED: no token, or expired with nobody refreshing

The storage backend sits behind TokenStore. MemoryTokenStore is per-process;
multi-process deployments must share a store (see consumerview.database) or
they will log in independently and revoke each other's tokens.
"""

import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .errors import RefreshFailed
from .logger import get_logger

logger = get_logger()

DEFAULT_TOKEN_TTL = 29 * 60
DEFAULT_RACE_GRACE_WINDOW = 10
DEFAULT_REFRESH_LEASE = 45  # longer than the default 30s transport timeout
DEFAULT_CACHE_KEY = "consumerview:token"


def token_cache_key(user_id: str) -> str:
    """Cache key scoped to one credential pair."""
    return f"{DEFAULT_CACHE_KEY}:{user_id}"


@dataclass(frozen=True)
class CachedTokenEntry:
    """A stored token plus the timing needed to judge its freshness (epoch seconds)."""

    value: str
    cached_at: float
    ttl: float
    race_grace_window: float

    @property
    def expires_at(self) -> float:
        return self.cached_at + self.ttl

    @property
    def stale_until(self) -> float:
        return self.expires_at + self.race_grace_window

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at

    def is_servable_stale(self, now: float) -> bool:
        return now < self.stale_until


class TokenState(Enum):
    FRESH = "fresh"
    STALE_SERVING = "stale_serving"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


class TokenStore(ABC):
    """
    Backing store for cached tokens.

    Implementations must make `try_begin_refresh` an atomic compare-and-swap:
    at most one owner may hold an unexpired lease for a key.
    """

    @abstractmethod
    def read(self, key: str) -> Optional[CachedTokenEntry]:
        ...

    @abstractmethod
    def write(self, key: str, entry: CachedTokenEntry) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def try_begin_refresh(self, key: str, owner: str, now: float, lease_seconds: float) -> bool:
        """Take the refresh lease for `key`; False if someone else holds a live one."""

    @abstractmethod
    def end_refresh(self, key: str, owner: str) -> None:
        """Release the lease, only if `owner` still holds it."""

    @abstractmethod
    def is_refreshing(self, key: str, now: float) -> bool:
        ...


class MemoryTokenStore(TokenStore):
    """Thread-safe in-process store. Not shared between processes."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, CachedTokenEntry] = {}
        self._leases: Dict[str, Tuple[str, float]] = {}

    def read(self, key: str) -> Optional[CachedTokenEntry]:
        with self._lock:
            return self._entries.get(key)

    def write(self, key: str, entry: CachedTokenEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def try_begin_refresh(self, key: str, owner: str, now: float, lease_seconds: float) -> bool:
        with self._lock:
            lease = self._leases.get(key)
            if lease is not None and lease[1] > now:
                return False
            self._leases[key] = (owner, now + lease_seconds)
            return True

    def end_refresh(self, key: str, owner: str) -> None:
        with self._lock:
            lease = self._leases.get(key)
            if lease is not None and lease[0] == owner:
                del self._leases[key]

    def is_refreshing(self, key: str, now: float) -> bool:
        with self._lock:
            lease = self._leases.get(key)
            return lease is not None and lease[1] > now


class TokenCache:
    """
    Single named token with TTL, grace window and one-refresher-at-a-time policy.

    Example:
        cache = TokenCache(MemoryTokenStore(), key=token_cache_key("user@example.com"))
        token = cache.get_or_refresh(lambda: api.login(user, password))
    """

    def __init__(
        self,
        store: Optional[TokenStore] = None,
        key: str = DEFAULT_CACHE_KEY,
        ttl: float = DEFAULT_TOKEN_TTL,
        race_grace_window: float = DEFAULT_RACE_GRACE_WINDOW,
        refresh_lease: float = DEFAULT_REFRESH_LEASE,
        poll_interval: float = 0.05,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            store: Backing store (default: new MemoryTokenStore)
            key: Cache key; scope it per credential pair with token_cache_key()
            ttl: Seconds a fresh token is served without refreshing
            race_grace_window: Seconds past expiry a token may be served while
                another caller refreshes
            refresh_lease: Seconds a refresher may hold the lease before others
                are allowed to take over
            poll_interval: Seconds between store checks while waiting on a refresh
            clock: Epoch-seconds clock (wall clock, so stores can be shared)
            sleep: Sleep function used while waiting
        """
        self.store = store or MemoryTokenStore()
        self.key = key
        self.ttl = ttl
        self.race_grace_window = race_grace_window
        self.refresh_lease = refresh_lease
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def state(self) -> TokenState:
        now = self._clock()
        entry = self.store.read(self.key)
        if entry is not None and entry.is_fresh(now):
            return TokenState.FRESH
        if self.store.is_refreshing(self.key, now):
            if entry is not None and entry.is_servable_stale(now):
                return TokenState.STALE_SERVING
            return TokenState.REFRESHING
        return TokenState.EXPIRED

    def invalidate(self) -> None:
        self.store.delete(self.key)

    def get_or_refresh(self, refresh_fn: Callable[[], str], force_refresh: bool = False) -> str:
        """
        Return a usable token, calling `refresh_fn` when one must be fetched.

        Args:
            refresh_fn: Obtains a new token (normally a login call)
            force_refresh: Ignore a live entry, e.g. after the API rejected it

        Raises:
            RefreshFailed: If `refresh_fn` raises
        """
        now = self._clock()
        entry = self.store.read(self.key)
        if not force_refresh and entry is not None and entry.is_fresh(now):
            return entry.value

        seen_at = entry.cached_at if entry is not None else None
        owner = uuid.uuid4().hex

        while True:
            if self.store.try_begin_refresh(self.key, owner, now, self.refresh_lease):
                # Another caller may have published between our read and the lease.
                latest = self.store.read(self.key)
                if self._usable(latest, self._clock(), seen_at, force_refresh):
                    self.store.end_refresh(self.key, owner)
                    return latest.value
                return self._refresh(refresh_fn, owner, forced=force_refresh)

            if not force_refresh and entry is not None and entry.is_servable_stale(now):
                logger.debug("Serving expired token while another caller refreshes", key=self.key)
                return entry.value

            # Wait for the in-flight refresh to publish a newer token.
            self._sleep(self.poll_interval)
            now = self._clock()
            latest = self.store.read(self.key)
            if self._usable(latest, now, seen_at, forced=True):
                return latest.value

    @staticmethod
    def _usable(entry: Optional[CachedTokenEntry], now: float, seen_at: Optional[float], forced: bool) -> bool:
        """Fresh, and for forced callers also newer than the token they rejected."""
        if entry is None or not entry.is_fresh(now):
            return False
        return not forced or seen_at is None or entry.cached_at > seen_at

    def _refresh(self, refresh_fn: Callable[[], str], owner: str, forced: bool) -> str:
        logger.debug("Refreshing token", key=self.key, forced=forced)
        try:
            try:
                value = refresh_fn()
            except Exception as e:
                logger.error("Token refresh failed", key=self.key, error=type(e).__name__)
                raise RefreshFailed(f"Token refresh failed: {e}") from e

            self.store.write(
                self.key,
                CachedTokenEntry(
                    value=value,
                    cached_at=self._clock(),
                    ttl=self.ttl,
                    race_grace_window=self.race_grace_window,
                ),
            )
        finally:
            self.store.end_refresh(self.key, owner)
        return value
