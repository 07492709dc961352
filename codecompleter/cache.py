"""In-memory suggestion cache keyed by a fingerprint of the context window.

Entries expire after a fixed TTL. Nothing is persisted: the cache lives
and dies with its provider.
"""

from __future__ import annotations

import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass


@dataclass
class CacheEntry:
    fingerprint: str
    insert_text: str
    created_at: float


def fingerprint(*parts: str) -> str:
    """Stable digest of the given text parts."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


class SuggestionCache:
    def __init__(self, ttl_seconds: float = 300.0, max_entries: int = 500):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at >= self.ttl_seconds

    def get(self, key: str, now: float | None = None) -> str | None:
        """Return the cached text for ``key`` unless missing or expired."""
        if now is None:
            now = time.time()
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry, now):
            del self._entries[key]
            return None
        return entry.insert_text

    def put(self, key: str, insert_text: str, now: float | None = None) -> None:
        if now is None:
            now = time.time()
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key, insert_text, now)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def prune(self, now: float | None = None) -> int:
        """Remove expired entries. Returns count removed."""
        if now is None:
            now = time.time()
        expired = [k for k, e in self._entries.items() if self._expired(e, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
