"""
In-process price cache for Quote Proxy.
Holds the latest quote per symbol with its observation time; entries live for the process lifetime.
"""

import threading
from typing import Dict, List, Optional

from ..api.schemas import CacheEntry, Quote
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class PriceCache:
    """
    Symbol -> CacheEntry map guarded by a single lock.

    Writes are last-writer-wins: `put` overwrites whatever is cached, even an
    entry with a newer observation time. Entries are immutable, so callers
    can hold on to what `get` returns.

    Methods are synchronous and never await under the lock, so the cache is
    safe to call from sync code and worker threads as well as the event loop.
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, symbol: str) -> Optional[CacheEntry]:
        """Get the cached entry for a symbol, fresh or not."""
        with self._lock:
            return self._entries.get(symbol)

    def put(self, symbol: str, quote: Quote, observed_at: float) -> None:
        """Store a quote for a symbol, replacing any existing entry."""
        entry = CacheEntry(quote=quote, observed_at=observed_at)
        with self._lock:
            self._entries[symbol] = entry

    @staticmethod
    def is_fresh(entry: CacheEntry, now: float, ttl: float) -> bool:
        """An entry is fresh strictly before observed_at + ttl."""
        return now - entry.observed_at < ttl

    def get_fresh(self, symbol: str, now: float, ttl: float) -> Optional[Quote]:
        """Get the cached quote only if it is still within `ttl`."""
        entry = self.get(symbol)
        if entry is None or not self.is_fresh(entry, now, ttl):
            return None
        return entry.quote

    def symbols(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._entries
