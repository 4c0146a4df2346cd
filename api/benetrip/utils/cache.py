"""
In-memory Caching Utilities
"""
from typing import Any, Callable, Dict, Optional, Tuple
import asyncio
import logging
import time

from benetrip.config import settings

logger = logging.getLogger(__name__)


class TTLCache:
    """
    Process-local cache with a per-entry expiry timestamp.

    Owned by whoever creates it (the application lifespan, a test) and
    passed explicitly to the services that need it.
    """

    def __init__(
        self,
        default_ttl: int = settings.CACHE_TTL_RESULTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with TTL"""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return False
        self._entries[key] = (self._clock() + ttl, value)
        return True

    def delete(self, key: str) -> bool:
        """Delete key from cache"""
        return self._entries.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        """Check if key exists"""
        return self.get(key) is not None

    def clear(self):
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed"""
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def get_or_set(
        self,
        key: str,
        factory,
        ttl: Optional[int] = None
    ) -> Any:
        """Get from cache or compute and cache"""
        value = self.get(key)
        if value is not None:
            logger.debug(f"Cache HIT: {key}")
            return value

        logger.debug(f"Cache MISS: {key}")
        if callable(factory):
            value = await factory() if asyncio.iscoroutinefunction(factory) else factory()
        else:
            value = factory

        if value is not None:
            self.set(key, value, ttl)
        return value
