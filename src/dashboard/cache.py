"""
Result caching layer.

Generated dashboard specs are remembered per (schema signature, normalized
prompt) so a repeated request skips the collaborator round trip.  Nothing
depends on the cache for correctness.

Entries live in an insertion-ordered map that doubles as the eviction
queue: a full cache drops its oldest write first.  Writing an existing key
moves it to the back of the queue.  The clock is injectable so expiry can
be tested without sleeping.
"""
from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from src.core.logging import get_logger
from src.dashboard.spec import ColumnSchema

logger = get_logger(__name__)

DEFAULT_TTL = 300.0
DEFAULT_CAPACITY = 100


@dataclass
class _Slot:
    value: Any
    stored_at: float
    reads: int = 0


class ResultCache:
    """Thread-safe bounded TTL cache.

    Parameters
    ----------
    ttl : float
        Seconds an entry stays readable after it was written.
    max_size : int
        Capacity; the oldest write is dropped to make room.  Zero or less
        disables storing.
    clock : callable, optional
        Returns the current time in seconds; defaults to ``time.time``.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] | None = None,
    ):
        self._ttl = ttl
        self._capacity = max_size
        self._now = clock or time.time
        self._slots: OrderedDict[str, _Slot] = OrderedDict()
        self._guard = threading.Lock()
        self._hit_count = 0
        self._miss_count = 0

    def _stale(self, slot: _Slot, now: float) -> bool:
        return now - slot.stored_at > self._ttl

    def get(self, schema: list[ColumnSchema], prompt: str) -> Any | None:
        """The stored value, or ``None`` when absent or stale."""
        key = self.make_key(schema, prompt)
        with self._guard:
            slot = self._slots.get(key)
            if slot is not None and self._stale(slot, self._now()):
                del self._slots[key]
                slot = None
            if slot is None:
                self._miss_count += 1
                return None
            slot.reads += 1
            self._hit_count += 1
        logger.debug("Cache hit %s (read %d times)", key[:12], slot.reads)
        return slot.value

    def put(self, schema: list[ColumnSchema], prompt: str, value: Any) -> None:
        if self._capacity <= 0:
            return
        key = self.make_key(schema, prompt)
        with self._guard:
            if key in self._slots:
                self._slots.move_to_end(key)
            elif len(self._slots) >= self._capacity:
                dropped, _ = self._slots.popitem(last=False)
                logger.debug("Cache full, dropped %s", dropped[:12])
            self._slots[key] = _Slot(value=value, stored_at=self._now())
            size = len(self._slots)
        logger.debug("Cache store %s (size=%d)", key[:12], size)

    def clear(self) -> int:
        """Drop every entry; returns how many there were."""
        with self._guard:
            removed = len(self._slots)
            self._slots.clear()
        return removed

    def cleanup_expired(self) -> int:
        """Drop stale entries; returns how many were removed."""
        now = self._now()
        with self._guard:
            stale = [key for key, slot in self._slots.items() if self._stale(slot, now)]
            for key in stale:
                del self._slots[key]
        return len(stale)

    def stats(self) -> dict[str, Any]:
        with self._guard:
            lookups = self._hit_count + self._miss_count
            return {
                "size": len(self._slots),
                "max_size": self._capacity,
                "ttl_seconds": self._ttl,
                "hits": self._hit_count,
                "misses": self._miss_count,
                "hit_rate": round(self._hit_count / lookups, 3) if lookups else 0.0,
            }

    def __len__(self) -> int:
        return len(self._slots)

    @staticmethod
    def make_key(schema: list[ColumnSchema], prompt: str) -> str:
        """sha256 of the column signature and the whitespace-collapsed, lowercased prompt."""
        signature = ",".join(f"{col.name}:{col.type}" for col in schema)
        normalized = " ".join(prompt.lower().split())
        return hashlib.sha256(f"{signature}|{normalized}".encode()).hexdigest()
