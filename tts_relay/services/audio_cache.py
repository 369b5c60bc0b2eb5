"""Process-wide, bounded memo of completed synthesis results.

Entries are keyed by request fingerprint and evicted strictly in insertion
order (oldest first); lookups do not refresh an entry's position. Results at
or above ``max_bytes`` are never stored. The cache is shared by every
connection's queue worker, so all access goes through a single lock.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

logger = logging.getLogger(__name__)

CACHE_MAX_SIZE = 100
CACHE_MAX_BYTES = 1024 * 1024


class AudioCache:
    """Insertion-ordered fingerprint -> audio blob map with a size bound."""

    def __init__(
        self, max_entries: int = CACHE_MAX_SIZE, max_bytes: int = CACHE_MAX_BYTES
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._max_bytes = max_bytes
        # OrderedDict keeps insertion order; the first key is always the oldest.
        self._entries: OrderedDict[str, bytes] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def lookup(self, fingerprint: str) -> bytes | None:
        """Return the cached blob for *fingerprint*, or ``None`` on a miss."""
        with self._lock:
            blob = self._entries.get(fingerprint)
            if blob is None:
                self._misses += 1
            else:
                self._hits += 1
        if blob is not None:
            logger.debug("Audio cache hit (key=%s)", fingerprint[:12])
        return blob

    def insert(self, fingerprint: str, blob: bytes) -> bool:
        """Store *blob* under *fingerprint*.

        Returns True if the entry was added. Empty and oversized blobs are
        skipped, and an existing entry for the same fingerprint is kept as is.
        """
        if not blob:
            return False
        if len(blob) >= self._max_bytes:
            logger.info(
                "Audio cache skipped %d-byte result (key=%s, limit=%d)",
                len(blob), fingerprint[:12], self._max_bytes,
            )
            return False

        evicted_key = None
        with self._lock:
            if fingerprint in self._entries:
                return False
            if len(self._entries) >= self._max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[fingerprint] = bytes(blob)

        if evicted_key is not None:
            logger.debug("Audio cache evicted entry %s", evicted_key[:12])
        logger.debug("Audio cache stored %d bytes (key=%s)", len(blob), fingerprint[:12])
        return True

    def keys(self) -> list[str]:
        """Fingerprints currently held, oldest first."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "bytes": sum(len(b) for b in self._entries.values()),
                "max_entries": self._max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._entries
