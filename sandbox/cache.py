"""Process-local, time-bounded cache of live sandbox handles.

Resolving a handle for an existing sandbox costs a remote round trip, so
handles are kept per key (sandbox id, or the forced URL for local sandboxes)
and evicted by a periodic sweep once idle longer than the TTL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sandbox.base import SandboxHandle

logger = logging.getLogger(__name__)

Lookup = Callable[[str], Awaitable[SandboxHandle]]


def cache_key(sandbox_id: str, forced_url: str | None = None) -> str:
    return forced_url or sandbox_id


@dataclass
class CacheEntry:
    handle: SandboxHandle
    last_accessed: float


class SandboxCache:
    """Handle cache with an owned periodic sweep task.

    All map mutations are plain dict operations with no await in between,
    so they are serialized by the event loop.
    """

    def __init__(
        self,
        lookup: Lookup,
        ttl: float = 300.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._lookup = lookup
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._sweep_task: asyncio.Task | None = None

    async def resolve(self, sandbox_id: str, forced_url: str | None = None) -> SandboxHandle:
        """Return the cached handle for a sandbox, looking it up remotely on a miss."""
        key = cache_key(sandbox_id, forced_url)
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_accessed = self._clock()
            logger.debug("Cache HIT for %s", key)
            return entry.handle

        logger.debug("Cache MISS for %s", key)
        # Lookup failures propagate uncached.
        handle = await self._lookup(sandbox_id)
        self._entries[key] = CacheEntry(handle=handle, last_accessed=self._clock())
        return handle

    def register(self, sandbox_id: str, handle: SandboxHandle, forced_url: str | None = None) -> None:
        """Insert or replace a freshly created handle."""
        key = cache_key(sandbox_id, forced_url)
        self._entries[key] = CacheEntry(handle=handle, last_accessed=self._clock())
        logger.debug("Manually cached %s", key)

    def invalidate(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            logger.info("Invalidated %s", key)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._entries), "entries": list(self._entries)}

    def sweep(self, now: float | None = None) -> int:
        """Evict entries idle longer than the TTL. Returns the number evicted."""
        now = self._clock() if now is None else now
        stale = [key for key, entry in self._entries.items() if now - entry.last_accessed > self.ttl]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.info("Cleaning up %d stale cache entries", len(stale))
        return len(stale)

    # ==================== Sweep task ====================

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic sweep. Must be called from a running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="sandbox-cache-sweep")

    async def stop(self) -> None:
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Sandbox cache sweep failed")
