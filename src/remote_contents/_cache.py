"""Time-boxed GET response cache with in-flight request de-duplication."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urlsplit

from remote_contents._path import to_api_path

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = logging.getLogger(__name__)

_CONTENTS_MARKER = "/api/contents/"


def cache_key(method: str, url: str) -> str:
    return f"{method.upper()}:{url}"


def _key_path(key: str) -> str | None:
    """Extract the API path embedded in a cache key's URL, if any."""
    _, _, url = key.partition(":")
    path = urlsplit(url).path
    if _CONTENTS_MARKER not in path:
        return None
    return unquote(path.split(_CONTENTS_MARKER, 1)[1]).strip("/")


@dataclasses.dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    stored_at: float


class ResponseCache:
    """FIFO-evicting, TTL-bounded cache of decoded GET payloads.

    Eviction order is insertion order, not recency of use.

    :param timeout_ms: Maximum entry age.
    :param max_size: Maximum number of entries.
    :param clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        timeout_ms: float = 5000,
        max_size: int = 100,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._timeout = timeout_ms / 1000
        self._max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future[Any]] = {}

    def __repr__(self) -> str:
        return f"ResponseCache(size={len(self._entries)}, max_size={self._max_size}, pending={len(self._pending)})"

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def pending(self) -> int:
        return len(self._pending)

    def get(self, key: str) -> Any | None:
        """Return the cached payload, or ``None`` on a miss.

        Stale entries are evicted on access.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self._timeout:
            del self._entries[key]
            return None
        log.debug("Cache hit: %s", key)
        return entry.payload

    def put(self, key: str, payload: Any) -> None:
        """Store ``payload``; evicts the oldest-inserted entry when full."""
        self._entries.pop(key, None)
        if len(self._entries) >= self._max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = CacheEntry(key=key, payload=payload, stored_at=self._clock())

    async def dedupe(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Share one in-flight call per key among concurrent callers.

        The first caller starts ``factory()``; callers arriving before it
        finishes await the same result (or exception). The registration is
        dropped once the call settles.
        """
        pending = self._pending.get(key)
        if pending is not None:
            log.debug("Joining in-flight request: %s", key)
            return await asyncio.shield(pending)
        future = asyncio.ensure_future(factory())
        self._pending[key] = future
        try:
            return await asyncio.shield(future)
        finally:
            if self._pending.get(key) is future:
                del self._pending[key]

    def invalidate(self, path: str, *, recursive: bool = True) -> int:
        """Drop cached responses for ``path``.

        With ``recursive`` the entries of every descendant go too. Matching is
        segment-aware: invalidating ``a`` leaves ``ab`` alone.

        :returns: The number of entries removed.
        """
        target = to_api_path(path).rstrip("/")
        stale = []
        for key in self._entries:
            key_path = _key_path(key)
            if key_path is None:
                continue
            if key_path == target or (recursive and (not target or key_path.startswith(target + "/"))):
                stale.append(key)
        for key in stale:
            del self._entries[key]
        if stale:
            log.debug("Invalidated %d cache entries for %r", len(stale), path)
        return len(stale)

    def resize(self, max_size: int, timeout_ms: float | None = None) -> None:
        """Apply new limits; clears everything if the new size is below current occupancy."""
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        if max_size < len(self._entries):
            self.clear()
        self._max_size = max_size
        if timeout_ms is not None:
            self._timeout = timeout_ms / 1000

    def clear(self) -> None:
        """Drop every entry and every in-flight registration."""
        self._entries.clear()
        self._pending.clear()
