import asyncio
import time
from typing import Any, Awaitable, Callable, Optional


class DocumentCache:
    """In-memory TTL cache for documents read from the blob store."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.monotonic() < expires_at:
                return value
            del self._entries[key]
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        async with self._lock:
            self._entries[key] = (value, time.monotonic() + ttl)

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]], ttl: int) -> Any:
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        # Misses are not cached so a first refresh is visible immediately.
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def invalidate_prefix(self, prefix: str) -> None:
        async with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]


cache = DocumentCache()

CACHE_TTL_DOCUMENTS = 30
