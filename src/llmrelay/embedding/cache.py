# src/llmrelay/embedding/cache.py
"""
Embedding Cache Implementation.

Bounded in-memory LRU cache for embedding vectors with a per-entry
time-to-live. Cached vectors are pure functions of (text, provider, model),
so the cache is read/check-then-write: two concurrent requests for the same
missing key may both generate and both store, and the latest write wins.
No lock is held while a vector is being generated.

Cache Key: SHA256("provider:model:text")
Cache Value: List[float] (the embedding vector)

Usage:
    cache = EmbeddingCache(max_size=10000, ttl_seconds=86400)

    embedding = cache.get(text, "text-embedding-3-small", "openai")
    if embedding is None:
        embedding = (await provider.generate_embeddings([text]))[0]
        cache.set(text, "text-embedding-3-small", "openai", embedding)

    # Batch operations
    results, missing_indices = cache.get_batch(texts, model, provider)
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


def make_cache_key(text: str, model: str, provider: str) -> str:
    """Generate cache key from text, model, and provider.

    Args:
        text: Text to embed.
        model: Model identifier.
        provider: Provider name.

    Returns:
        SHA256 hash as hex string.
    """
    combined = f"{provider}:{model}:{text}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


@dataclass
class EmbeddingCacheEntry:
    """A cached vector and the clock reading at which it was stored."""

    vector: List[float]
    created_at: float

    @property
    def dimension(self) -> int:
        return len(self.vector)


class EmbeddingCache:
    """Thread-safe LRU cache with TTL for embedding vectors.

    The LRU order is kept in an OrderedDict; when the cache reaches capacity
    the least recently used entry is evicted. Expired entries are dropped
    lazily on lookup and in bulk by :meth:`cleanup_expired`.

    Attributes:
        max_size: Maximum number of entries. 0 disables the cache.
        ttl_seconds: Lifetime of an entry in seconds.
        hits: Total cache hits.
        misses: Total cache misses.
    """

    def __init__(
        self,
        max_size: int = 10000,
        ttl_seconds: float = 86400.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            max_size: Maximum number of entries. Set to 0 to disable.
            ttl_seconds: Lifetime of an entry (default 24 hours).
            clock: Monotonic time source, injectable for tests.
        """
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, EmbeddingCacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _is_expired(self, entry: EmbeddingCacheEntry, now: float) -> bool:
        return now - entry.created_at >= self.ttl_seconds

    def _lookup(self, key: str, now: float) -> Optional[List[float]]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._is_expired(entry, now):
            del self._entries[key]
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.vector

    def get(self, text: str, model: str, provider: str) -> Optional[List[float]]:
        """Get an unexpired embedding from the cache.

        Returns:
            Cached embedding vector or None if absent or expired.
        """
        if self.max_size == 0:
            self.misses += 1
            return None
        key = make_cache_key(text, model, provider)
        with self._lock:
            embedding = self._lookup(key, self._clock())
        if embedding is not None:
            logger.debug(f"Embedding cache hit for model={model}")
        return embedding

    def set(self, text: str, model: str, provider: str, embedding: List[float]) -> None:
        """Store an embedding, evicting the least recently used entry if full."""
        if self.max_size == 0:
            return
        key = make_cache_key(text, model, provider)
        entry = EmbeddingCacheEntry(vector=list(embedding), created_at=self._clock())
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
                self.evictions += 1
            self._entries[key] = entry
        logger.debug(f"Cached embedding for model={model}, dim={entry.dimension}")

    def get_batch(
        self,
        texts: List[str],
        model: str,
        provider: str,
    ) -> Tuple[List[Optional[List[float]]], List[int]]:
        """Get embeddings for multiple texts from the cache.

        Returns:
            Tuple of:
            - List of embeddings (None for cache misses)
            - List of indices that were cache misses
        """
        results: List[Optional[List[float]]] = [None] * len(texts)
        if self.max_size == 0:
            self.misses += len(texts)
            return results, list(range(len(texts)))

        missing_indices: List[int] = []
        with self._lock:
            now = self._clock()
            for i, text in enumerate(texts):
                embedding = self._lookup(make_cache_key(text, model, provider), now)
                if embedding is None:
                    missing_indices.append(i)
                else:
                    results[i] = embedding

        if texts:
            hits = len(texts) - len(missing_indices)
            logger.debug(
                f"Batch cache lookup: {hits}/{len(texts)} hits "
                f"({100 * hits / len(texts):.1f}% hit rate)"
            )
        return results, missing_indices

    def set_batch(
        self,
        texts: List[str],
        model: str,
        provider: str,
        embeddings: List[List[float]],
    ) -> None:
        """Store multiple embeddings in the cache."""
        if len(texts) != len(embeddings):
            raise ValueError(
                f"Length mismatch: {len(texts)} texts vs {len(embeddings)} embeddings"
            )
        for text, embedding in zip(texts, embeddings):
            self.set(text, model, provider, embedding)

    def cleanup_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"Removed {len(expired)} expired embedding cache entries")
        return len(expired)

    def clear(self) -> None:
        """Clear all entries and reset statistics."""
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0
        logger.info("Embedding cache cleared")

    def __contains__(self, key: str) -> bool:
        """Check if a cache key is present without updating LRU order."""
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with size, max_size, ttl_seconds, hits, misses, evictions and hit_rate.
        """
        with self._lock:
            total = self.hits + self.misses
            hit_rate = self.hits / total if total > 0 else 0.0
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": round(hit_rate, 4),
            }


__all__ = ["EmbeddingCache", "EmbeddingCacheEntry", "make_cache_key"]
