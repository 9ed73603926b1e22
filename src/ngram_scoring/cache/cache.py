"""
Probability lookup cache
------------------------
Fixed-capacity, direct-mapped cache from n-gram to score. Each bucket holds
one entry; storing into an occupied bucket overwrites it. Shared by every
scoring engine wrapping the same model, so reads and writes go through a
reader/writer lock.

Entries carry a small non-negative variant tag next to the n-gram, so scores
computed different ways (e.g. normalized and unnormalized) never answer for
each other. A bucket is empty until something is stored in it, whatever ids
the query holds.
"""

import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

EMPTY_KEY = -1
EMPTY_SLOT = -1


class ReadWriteLock:
    """
    Many readers or one writer.

    A waiting writer blocks new readers, so a steady stream of lookups
    cannot starve a store.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@dataclass(frozen=True)
class CacheStats:
    capacity: int
    lookups: int
    hits: int

    @property
    def hit_rate(self) -> float:
        return self.hits / self.lookups if self.lookups else math.nan


class LookupCache:
    """
    Direct-mapped n-gram -> score cache.

    Args:
        order (int): n-gram length; every key must have exactly this many ids.
        capacity (int): number of buckets. 0 disables caching: lookups always
            miss and stores are ignored.
    """

    def __init__(self, order: int, capacity: int = 0):
        if order < 1:
            raise ValueError(f"n-gram order must be positive, got {order}")
        self.order = order
        self._lock = ReadWriteLock()
        self._stats_lock = threading.Lock()
        self._allocate(capacity)

    def _allocate(self, capacity: int) -> None:
        if capacity < 0:
            raise ValueError(f"cache capacity must be non-negative, got {capacity}")
        self.capacity = capacity
        self._keys = np.full((capacity, self.order), EMPTY_KEY, dtype=np.int32)
        # EMPTY_SLOT until stored, then the variant of the entry
        self._slots = np.full(capacity, EMPTY_SLOT, dtype=np.int8)
        self._values = np.zeros(capacity, dtype=np.float64)
        self.lookups = 0
        self.hits = 0

    def _key(self, ngram: Sequence[int]) -> tuple:
        key = tuple(int(t) for t in ngram)
        if len(key) != self.order:
            raise ValueError(f"expected a {self.order}-gram, got {len(key)} ids")
        return key

    def _bucket(self, key: tuple, variant: int) -> int:
        if not 0 <= variant <= np.iinfo(np.int8).max:
            raise ValueError(f"cache variant must be in [0, 127], got {variant}")
        return hash((variant,) + key) % self.capacity

    def lookup(self, ngram: Sequence[int], variant: int = 0) -> Optional[float]:
        """Return the cached score for `ngram` under `variant`, or None on a miss."""
        if not self.capacity:
            return None
        key = self._key(ngram)
        bucket = self._bucket(key, variant)

        with self._lock.read_locked():
            hit = (int(self._slots[bucket]) == variant
                   and tuple(self._keys[bucket].tolist()) == key)
            value = float(self._values[bucket]) if hit else None

        with self._stats_lock:
            self.lookups += 1
            if hit:
                self.hits += 1
        return value

    def store(self, ngram: Sequence[int], score: float, variant: int = 0) -> None:
        """Put `score` in the bucket of `ngram`, evicting whatever was there."""
        if not self.capacity:
            return
        key = self._key(ngram)
        bucket = self._bucket(key, variant)

        with self._lock.write_locked():
            self._keys[bucket] = key
            self._slots[bucket] = variant
            self._values[bucket] = score

    def resize(self, capacity: int) -> None:
        """
        Replace the storage with `capacity` empty buckets and reset the counters.
        Must not run while other threads are using the cache.
        """
        with self._lock.write_locked():
            with self._stats_lock:
                self._allocate(capacity)

    def clear(self) -> None:
        self.resize(self.capacity)

    @property
    def hit_rate(self) -> float:
        """hits / lookups; NaN before the first lookup."""
        return self.stats().hit_rate

    def stats(self) -> CacheStats:
        with self._stats_lock:
            return CacheStats(self.capacity, self.lookups, self.hits)
