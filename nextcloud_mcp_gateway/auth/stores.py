"""Transient in-memory stores for authorization codes and refresh tokens.

Entries live only in process memory and are lost on restart. Each store is
guarded by a lock so that ``take`` (read-and-delete) is atomic: of two
concurrent redemptions of the same id exactly one receives the entry.
"""

import logging
import secrets
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

from nextcloud_mcp_gateway.auth.models import IssuedCode, RefreshTokenGrant

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Authorization code validity: 5 minutes
AUTH_CODE_TTL = 300
# Refresh token validity: 24 hours
REFRESH_TOKEN_TTL = 24 * 3600


class TransientStore(Generic[T]):
    """Map of random opaque ids to entries with a fixed time-to-live."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # id -> (entry, expires_at)
        self._entries: dict[str, tuple[T, float]] = {}

    def store(self, entry: T) -> str:
        """Store an entry and return its newly generated id."""
        with self._lock:
            now = self._clock()
            if len(self._entries) >= self.max_entries:
                self._purge_expired_locked(now)
            if len(self._entries) >= self.max_entries:
                # Drop the oldest entry (dicts keep insertion order)
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.warning(
                    f"{type(self).__name__} capacity ({self.max_entries}) reached, "
                    "evicted oldest entry"
                )

            entry_id = secrets.token_urlsafe(32)
            while entry_id in self._entries:
                entry_id = secrets.token_urlsafe(32)
            self._entries[entry_id] = (entry, now + self.ttl_seconds)
            return entry_id

    def get(self, entry_id: str) -> Optional[T]:
        """Return the entry without consuming it, or None if unknown/expired."""
        with self._lock:
            item = self._entries.get(entry_id)
            if item is None:
                return None
            entry, expires_at = item
            if self._clock() >= expires_at:
                del self._entries[entry_id]
                return None
            return entry

    def take(self, entry_id: str) -> Optional[T]:
        """Atomically remove and return the entry, or None if unknown/expired."""
        with self._lock:
            item = self._entries.pop(entry_id, None)
        if item is None:
            return None
        entry, expires_at = item
        if self._clock() >= expires_at:
            return None
        return entry

    def delete(self, entry_id: str) -> None:
        with self._lock:
            self._entries.pop(entry_id, None)

    def purge_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def _purge_expired_locked(self, now: float) -> int:
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CodeStore(TransientStore[IssuedCode]):
    """Issued authorization codes awaiting their single redemption."""

    def __init__(self, ttl_seconds: float = AUTH_CODE_TTL, **kwargs):
        super().__init__(ttl_seconds, **kwargs)


class RefreshStore(TransientStore[RefreshTokenGrant]):
    """Active refresh tokens; each is replaced on every use."""

    def __init__(self, ttl_seconds: float = REFRESH_TOKEN_TTL, **kwargs):
        super().__init__(ttl_seconds, **kwargs)
