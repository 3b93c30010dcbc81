"""
Partner Token Cache

Explicit, injectable cache for provider partner/app tokens.

Refresh is lazy: callers ask for a token and log in again on a miss.
Concurrent refreshes are harmless; the last stored token wins.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class CachedToken:
    value: str
    expires_at: float


class TokenCache:
    """
    In-memory token cache with a per-entry TTL.

    Args:
        ttl_seconds: Lifetime of a stored token
        clock: Monotonic time source (overridable in tests)
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._tokens: dict[str, CachedToken] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        """Get a live token, or None when absent or expired."""
        with self._lock:
            entry = self._tokens.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._tokens[key]
                return None
            return entry.value

    def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._tokens[key] = CachedToken(value=value, expires_at=self._clock() + ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._tokens.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()
