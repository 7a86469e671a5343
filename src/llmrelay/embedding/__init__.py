# src/llmrelay/embedding/__init__.py
"""
Embedding module for llmrelay.

Provides embedding generation across providers, an in-memory TTL cache for
generated vectors and cosine-similarity search.

Usage:
    from llmrelay.embedding import EmbeddingService

    service = EmbeddingService(registry)
    vector = await service.generate_cached("refund policy")
"""

from .cache import EmbeddingCache, EmbeddingCacheEntry, make_cache_key
from .service import EMBEDDING_NAME_MARKERS, EmbeddingService, Vector
from .similarity import cosine_similarity, find_most_similar

__all__ = [
    # Service
    "EmbeddingService",
    "EMBEDDING_NAME_MARKERS",
    "Vector",
    # Cache
    "EmbeddingCache",
    "EmbeddingCacheEntry",
    "make_cache_key",
    # Similarity
    "cosine_similarity",
    "find_most_similar",
]
