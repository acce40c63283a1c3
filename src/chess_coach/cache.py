"""Bounded, thread-safe LRU cache for per-position analyses."""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Hashable, Optional

from .uci import AnalysisResult


@dataclass(frozen=True)
class CacheEntry:
    result: AnalysisResult
    commentary: Optional[str] = None
    stored_at: float = field(default_factory=time.monotonic, compare=False)


class AnalysisCache:
    """LRU map of canonical key → CacheEntry.

    Evicts the least-recently-used entry once more than max_entries are stored;
    entries older than ttl_s (if set) are dropped on access.
    """

    def __init__(self, max_entries: int = 1024, ttl_s: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._entries: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()
        self._max_entries = max_entries
        self._ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def get(self, key: Hashable) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry

    def put(self, key: Hashable, result: AnalysisResult, commentary: Optional[str] = None) -> CacheEntry:
        entry = CacheEntry(result=result, commentary=commentary, stored_at=self._clock())
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _expired(self, entry: CacheEntry) -> bool:
        return self._ttl_s is not None and self._clock() - entry.stored_at > self._ttl_s
