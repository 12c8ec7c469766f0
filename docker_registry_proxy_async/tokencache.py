#!/usr/bin/env python

"""Token response caches."""

import logging
import time

from typing import Callable, Dict, Optional, Tuple

from .typing import CachedToken

LOGGER = logging.getLogger(__name__)


class TokenCache:
    """
    Key / value store for token responses with freshness checked at read time.

    Entries are replaced whole, never updated in place; concurrent writers of the same key are
    expected to store equivalent values.
    """

    async def get(self, key: str) -> Optional[CachedToken]:
        """
        Retrieves a fresh entry.

        Args:
            key: The cache key.

        Returns:
            The cached token response, or None if absent or expired.
        """
        raise NotImplementedError

    async def put(self, key: str, value: CachedToken, *, ttl: int):
        """
        Stores an entry.

        Args:
            key: The cache key.
            value: The token response to be cached.
            ttl: Freshness window, in seconds.
        """
        raise NotImplementedError


class MemoryTokenCache(TokenCache):
    """
    In-process token cache.
    """

    def __init__(self, *, clock: Callable[[], float] = None, max_size: int = 1024):
        """
        Args:
            clock: Source of monotonic time, in seconds.
            max_size: Maximum number of entries retained.
        """
        self.clock = clock if clock else time.monotonic
        self.max_size = max_size
        # key -> (expiry, value)
        self.entries = {}  # type: Dict[str, Tuple[float, CachedToken]]

    def __len__(self):
        return len(self.entries)

    async def get(self, key: str) -> Optional[CachedToken]:
        entry = self.entries.get(key)
        if entry is None:
            return None
        expiry, value = entry
        if self.clock() >= expiry:
            # Another request may have replaced the entry in the meantime.
            if self.entries.get(key) is entry:
                del self.entries[key]
            return None
        return value

    async def put(self, key: str, value: CachedToken, *, ttl: int):
        now = self.clock()
        if key not in self.entries and len(self.entries) >= self.max_size:
            self._evict(now)
        self.entries[key] = (now + ttl, value)

    def _evict(self, now: float):
        """Drops expired entries, then the oldest entries, until there is room for one more."""
        for key in [k for k, (expiry, _) in self.entries.items() if now >= expiry]:
            del self.entries[key]
        while self.entries and len(self.entries) >= self.max_size:
            key = next(iter(self.entries))
            LOGGER.debug("Evicting token cache entry: %s", key)
            del self.entries[key]
