"""
Message search over the Messages database.

Components:
- embeddings: OpenAI embedding provider and cosine similarity
- search: lexical and semantic search with explicit fallback
"""

from .embeddings import EmbeddingProvider, cosine_similarity
from .search import SearchEngine

__all__ = [
    "EmbeddingProvider",
    "SearchEngine",
    "cosine_similarity",
]
