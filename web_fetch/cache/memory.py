import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from web_fetch.core.config import settings


@dataclass(frozen=True)
class CacheEntry:
    content: str
    stored_at: float


class ResponseCache:
    """
    In-memory cache of extracted page text keyed by normalized URL.

    Expiry is checked lazily in get() and eagerly by a periodic sweep task
    started with start() and stopped with stop() from the app lifespan.
    Entries are replaced whole, so concurrent requests need no locking.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        sweep_interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = settings.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.sweep_interval = (
            settings.CACHE_SWEEP_INTERVAL_SECONDS if sweep_interval_seconds is None else sweep_interval_seconds
        )
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.ttl:
            self._entries.pop(key, None)
            return None
        return entry.content

    def set(self, key: str, content: str) -> None:
        self._entries[key] = CacheEntry(content=content, stored_at=self._clock())

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.stored_at > self.ttl]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    def stop(self) -> None:
        """Cancel the sweep (without waiting on it) and drop all entries."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            self._sweep_task = None
        self.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                print(f"CACHE SWEEP removed {removed} expired entries")

    def stats(self) -> dict:
        now = self._clock()
        live = sum(1 for entry in self._entries.values() if now - entry.stored_at <= self.ttl)
        return {
            "total_entries": len(self._entries),
            "live_entries": live,
            "ttl_seconds": self.ttl,
            "sweep_interval_seconds": self.sweep_interval,
            "sweep_running": self.running,
        }
