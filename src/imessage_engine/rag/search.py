"""
Message search: lexical substring matching or embedding similarity.

Semantic mode needs an embedding credential. Without one, or when the
query itself cannot be embedded, search falls back to lexical mode and
says so in the response; callers always learn which method ran.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..core.errors import ValidationError
from ..core.models import SearchMethod, SearchResponse, SearchResult
from ..core.validation import validate_limit, validate_non_empty_string
from ..messages_interface import MessagesInterface
from ..query_builder import MessageFilter
from .embeddings import EmbeddingProvider, cosine_similarity

logger = logging.getLogger(__name__)


class SearchEngine:
    """
    Searches messages by substring or by meaning.

    Usage:
        engine = SearchEngine(MessagesInterface())
        response = engine.search("dinner plans next week", semantic=True)
        response.method  # SearchMethod.SEMANTIC or SearchMethod.LEXICAL
    """

    def __init__(
        self,
        messages: MessagesInterface,
        provider: Optional[EmbeddingProvider] = None,
    ):
        self.messages = messages
        config = messages.config
        self.provider = provider or EmbeddingProvider(
            api_key=config.openai_api_key,
            model=config.embedding_model,
        )
        self.window = config.semantic_window
        self.min_chars = config.semantic_min_chars
        self.max_workers = config.embed_workers

    def _check(self, query: str, limit: int) -> tuple:
        query, error = validate_non_empty_string(query, "query")
        if error:
            raise ValidationError(error)
        limit, error = validate_limit(limit, default=20, max_val=self.messages.config.max_limit)
        if error:
            raise ValidationError(error)
        return query, limit

    def lexical(self, query: str, limit: int = 20) -> SearchResponse:
        """Substring match, newest first. No relevance ranking."""
        query, limit = self._check(query, limit)
        messages = self.messages.get_recent(limit=limit, text=query)
        return SearchResponse(
            method=SearchMethod.LEXICAL,
            query=query,
            results=[SearchResult(m) for m in messages],
        )

    def _fallback(self, query: str, limit: int, reason: str) -> SearchResponse:
        logger.warning(f"Semantic search unavailable, using lexical: {reason}")
        response = self.lexical(query, limit)
        response.fallback_reason = reason
        return response

    def _embed_all(self, texts: List[str]) -> List[Optional[List[float]]]:
        # One request per candidate; a failure leaves None and scores 0
        if not texts:
            return []
        workers = max(1, min(self.max_workers, len(texts)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self.provider.try_embed, texts))

    def semantic(self, query: str, limit: int = 20) -> SearchResponse:
        """
        Rank recent messages by cosine similarity to the query.

        Candidates are the most recent `window` messages with at least
        `min_chars` characters of text. Equal scores keep store order.
        """
        query, limit = self._check(query, limit)

        if not self.provider.available:
            return self._fallback(query, limit, "OPENAI_API_KEY not configured")

        try:
            query_vector = self.provider.embed_single(query)
        except Exception as e:
            return self._fallback(query, limit, f"Query embedding failed: {e}")

        candidates = self.messages.fetch_messages(
            MessageFilter(limit=self.window, min_text_length=self.min_chars),
            enrich=False,
        )
        vectors = self._embed_all([m.text or "" for m in candidates])

        scored = [
            SearchResult(message, cosine_similarity(query_vector, vector))
            for message, vector in zip(candidates, vectors)
        ]
        # sorted() is stable, so ties stay in store order
        ranked = sorted(scored, key=lambda r: r.score, reverse=True)[:limit]

        self.messages.resolver.enrich_with_names([r.message for r in ranked])
        logger.info(f"Semantic search ranked {len(scored)} candidates for query")
        return SearchResponse(method=SearchMethod.SEMANTIC, query=query, results=ranked)

    def search(self, query: str, limit: int = 20, semantic: bool = False) -> SearchResponse:
        if semantic:
            return self.semantic(query, limit)
        return self.lexical(query, limit)
