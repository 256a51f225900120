"""Bounded, expiring in-process cache of embedding vectors."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10_000
_MASK_64 = (1 << 64) - 1


def djb2_hash(text: str) -> int:
    """djb2 over the text's code points, wrapped to a signed 64-bit integer."""
    h = 5381
    for char in text:
        h = ((h << 5) + h + ord(char)) & _MASK_64
    return h - (1 << 64) if h >= 1 << 63 else h


def cache_key(text: str, model: str) -> str:
    return f"{model}_{djb2_hash(text)}"


@dataclass(frozen=True)
class CachedEmbedding:
    embedding: list[float]
    timestamp: float
    expires_at: float
    model: str

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now


class EmbeddingCache:
    """Thread-safe map of ``(model, text)`` to embedding with TTL and a hard cap.

    Expired entries are dropped lazily on ``get``. When a ``set`` pushes the
    cache over ``max_entries`` every expired entry is swept first, then the
    oldest entries (by insertion timestamp) are evicted until the cap holds.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries <= 0:
            msg = f"max_entries must be positive, got {max_entries}"
            raise ValueError(msg)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CachedEmbedding] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, text: str, model: str) -> list[float] | None:
        key = cache_key(text, model)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.embedding

    def set(self, text: str, model: str, embedding: list[float], ttl: float) -> None:
        now = self._clock()
        entry = CachedEmbedding(
            embedding=list(embedding),
            timestamp=now,
            expires_at=now + ttl,
            model=model,
        )
        with self._lock:
            self._entries[cache_key(text, model)] = entry
            if len(self._entries) > self._max_entries:
                self._evict(now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict(self, now: float) -> None:
        # Caller holds the lock.
        before = len(self._entries)
        self._entries = {k: v for k, v in self._entries.items() if not v.is_expired(now)}
        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            oldest = sorted(self._entries.items(), key=lambda kv: kv[1].timestamp)[:overflow]
            for key, _ in oldest:
                del self._entries[key]
        logger.debug("Embedding cache evicted %d entries", before - len(self._entries))
