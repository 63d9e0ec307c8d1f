"""
In-memory query cache.

Holds backend read results (story detail, version lists, illustration
lists) keyed by colon-separated names such as ``story:<id>:versions``.
Invalidation works on key prefixes, so dropping ``story:<id>`` also drops
everything cached beneath it.
"""

import time
from typing import Any, Optional

from core.logging import get_logger


logger = get_logger(__name__)


class QueryCache:
    """TTL cache with prefix invalidation."""

    def __init__(self, ttl: float = 300):
        self.ttl = ttl
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if time.monotonic() - stored_at > self.ttl:
            logger.debug("Cache expired", key=key)
            del self._entries[key]
            return None

        logger.debug("Cache hit", key=key)
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (time.monotonic(), value)
        logger.debug("Cache set", key=key)

    def invalidate(self, prefix: str) -> int:
        """
        Drop ``prefix`` and every key nested under it.

        Returns the number of entries removed.
        """
        doomed = [
            key for key in self._entries
            if key == prefix or key.startswith(f"{prefix}:")
        ]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("Cache invalidated", prefix=prefix, count=len(doomed))
        return len(doomed)

    def clear(self) -> None:
        """Clear all items from the cache."""
        self._entries.clear()
        logger.debug("Cache cleared")

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
