"""
Embedding provider and similarity scoring for semantic search.

CS Concept: an embedding maps text to a point in a high-dimensional
space where semantically close texts land near each other. Cosine
similarity measures the angle between two such vectors, ignoring their
length, so it lands in [-1, 1] with 1 meaning "same direction".

Vectors are computed on demand and never persisted.
"""

import logging
import math
import os
from typing import List, Optional, Sequence

from openai import OpenAI

from ..core.config import DEFAULT_EMBEDDING_MODEL

logger = logging.getLogger(__name__)


class EmbeddingProvider:
    """
    Generates embeddings with the OpenAI embeddings API.

    A missing API key is a supported configuration: `available` is False
    and no client is ever constructed, so no call is attempted.

    Args:
        api_key: OpenAI key (default: OPENAI_API_KEY)
        model: Embedding model name
        client: Pre-built client, mainly for tests
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_EMBEDDING_MODEL,
        client: Optional[object] = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY")
        self.model = model
        self._client = client

    @property
    def available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise RuntimeError("OPENAI_API_KEY is not set")
            self._client = OpenAI(api_key=self.api_key)
            logger.info(f"Initialized OpenAI embeddings with model: {self.model}")
        return self._client

    def embed_single(self, text: str) -> List[float]:
        """
        Embed one text. One API round trip per call.

        Raises:
            Whatever the OpenAI client raises; callers decide how to degrade.
        """
        try:
            response = self.client.embeddings.create(model=self.model, input=[text])
            return list(response.data[0].embedding)
        except Exception as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise

    def try_embed(self, text: str) -> Optional[List[float]]:
        """Embed one text, or None if the request failed."""
        try:
            return self.embed_single(text)
        except Exception:
            return None


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """
    Dot product over the product of norms.

    0.0 when either vector is missing, empty, mismatched or all zeros.
    """
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
