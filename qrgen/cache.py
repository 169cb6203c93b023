"""Fingerprint cache for encoded QR images.

Entries expire on whichever comes first: a fixed time-to-live from insertion
or a time-to-idle since the last successful lookup. Capacity is bounded for
the cache as a whole; admitting a new entry when it is full evicts the least
recently used entry. The key space is lock-striped across shards so lookups
for unrelated fingerprints do not contend.
"""

import hashlib
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from qrgen.logging import audit, get_logger
from qrgen.models import RenderRequest

log = get_logger("cache")

DEFAULT_TTL = 3600.0
DEFAULT_TTI = 1800.0
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_SHARDS = 16


@dataclass(frozen=True)
class Fingerprint:
    """Cache key of a render: content, size and the two raw color strings.

    ``logo_url`` is not part of the key. Two requests that differ only in
    their logo share one cache slot, so whichever rendered first (with or
    without the logo) is what later callers get until the entry expires.
    """

    content: str
    size: int
    fg_color: str | None = None
    bg_color: str | None = None

    @classmethod
    def from_request(cls, request: RenderRequest) -> "Fingerprint":
        return cls(request.content, request.size, request.fg_color, request.bg_color)

    def digest(self) -> str:
        """Short stable hex id, for logs."""
        raw = "\x1f".join([self.content, str(self.size), self.fg_color or "", self.bg_color or ""])
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:12]


class _Entry:
    __slots__ = ("data", "inserted_at", "accessed_at")

    def __init__(self, data: bytes, now: float):
        self.data = data
        self.inserted_at = now
        self.accessed_at = now


class _Shard:
    __slots__ = ("lock", "entries", "hits", "misses", "evictions", "expirations")

    def __init__(self):
        self.lock = threading.Lock()
        # Oldest access first; a hit moves the entry to the end.
        self.entries: OrderedDict[Fingerprint, _Entry] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0


class FingerprintCache:
    """Thread-safe bounded cache mapping fingerprints to encoded image bytes.

    Lookups only take the lock of the fingerprint's shard. Inserts are also
    serialized on one admission lock, so the entry count checked against
    ``max_entries`` cannot grow behind the check.

    Args:
        ttl: Seconds an entry lives after insertion.
        tti: Seconds an entry lives after its last access.
        max_entries: Upper bound on the total number of entries.
        shards: Number of independently locked partitions.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        tti: float = DEFAULT_TTI,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        shards: int = DEFAULT_SHARDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl <= 0 or tti <= 0:
            raise ValueError("ttl and tti must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if shards <= 0:
            raise ValueError("shards must be positive")

        self.ttl = ttl
        self.tti = tti
        self.max_entries = max_entries
        self._clock = clock
        self._admission = threading.Lock()
        self._shards = [_Shard() for _ in range(shards)]

    def _shard_for(self, fingerprint: Fingerprint) -> _Shard:
        return self._shards[hash(fingerprint) % len(self._shards)]

    def _expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl or now - entry.accessed_at >= self.tti

    def lookup(self, fingerprint: Fingerprint) -> bytes | None:
        """Return cached bytes for ``fingerprint``, or None if absent or expired.

        A hit refreshes the entry's idle timer and recency.
        """
        shard = self._shard_for(fingerprint)
        now = self._clock()
        with shard.lock:
            entry = shard.entries.get(fingerprint)
            if entry is not None and self._expired(entry, now):
                del shard.entries[fingerprint]
                shard.expirations += 1
                entry = None
            if entry is None:
                shard.misses += 1
                return None
            entry.accessed_at = now
            shard.entries.move_to_end(fingerprint)
            shard.hits += 1
            return entry.data

    def insert(self, fingerprint: Fingerprint, data: bytes):
        """Store or replace the entry for ``fingerprint``; both timers restart.

        A new fingerprint is admitted into a full cache by first dropping
        expired entries, then the least recently used entry of any shard.
        """
        data = bytes(data)
        shard = self._shard_for(fingerprint)
        now = self._clock()
        evicted = []
        with self._admission:
            with shard.lock:
                if fingerprint in shard.entries:
                    shard.entries[fingerprint] = _Entry(data, now)
                    shard.entries.move_to_end(fingerprint)
                    return

            if len(self) >= self.max_entries:
                self._purge(now)
            while len(self) >= self.max_entries:
                victim = self._evict_lru()
                if victim is None:
                    break
                evicted.append(victim)

            with shard.lock:
                shard.entries[fingerprint] = _Entry(data, now)

        for victim in evicted:
            log.debug("evicted %s to admit %s", victim.digest(), fingerprint.digest())

    def _evict_lru(self) -> Fingerprint | None:
        """Drop the least recently used entry across all shards.

        Each shard's first entry is its own least recently used one, so the
        oldest of those heads is the cache-wide victim.
        """
        oldest = None
        for shard in self._shards:
            with shard.lock:
                if not shard.entries:
                    continue
                fp, entry = next(iter(shard.entries.items()))
                if oldest is None or entry.accessed_at < oldest[2]:
                    oldest = (shard, fp, entry.accessed_at)
        if oldest is None:
            return None

        shard, fp, _ = oldest
        with shard.lock:
            if shard.entries.pop(fp, None) is not None:
                shard.evictions += 1
        return fp

    def _purge(self, now: float) -> int:
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [fp for fp, entry in shard.entries.items() if self._expired(entry, now)]
                for fp in stale:
                    del shard.entries[fp]
                shard.expirations += len(stale)
                removed += len(stale)
        return removed

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        removed = self._purge(self._clock())
        if removed:
            audit("cache.purged", logger=log, removed=removed)
        return removed

    def clear(self):
        for shard in self._shards:
            with shard.lock:
                shard.entries.clear()

    def __len__(self) -> int:
        return sum(len(shard.entries) for shard in self._shards)

    def __contains__(self, fingerprint: Fingerprint) -> bool:
        """Presence check that neither refreshes timers nor counts as a hit."""
        shard = self._shard_for(fingerprint)
        with shard.lock:
            entry = shard.entries.get(fingerprint)
            return entry is not None and not self._expired(entry, self._clock())

    def stats(self) -> dict:
        totals = {"entries": 0, "hits": 0, "misses": 0, "evictions": 0, "expirations": 0}
        for shard in self._shards:
            with shard.lock:
                totals["entries"] += len(shard.entries)
                totals["hits"] += shard.hits
                totals["misses"] += shard.misses
                totals["evictions"] += shard.evictions
                totals["expirations"] += shard.expirations
        totals["max_entries"] = self.max_entries
        totals["shards"] = len(self._shards)
        return totals
