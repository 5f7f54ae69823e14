"""Local sentence-transformers embedding provider.

Runs a sentence-transformers model in-process. No API calls required.
Encoding runs in a worker thread so the event loop keeps serving.
"""

import asyncio
import logging
import time

import numpy as np
from sentence_transformers import SentenceTransformer

from knowledge_cache.config import settings
from knowledge_cache.errors import EmbeddingFailure

logger = logging.getLogger(__name__)


class LocalEmbeddingProvider:
    """Local sentence-transformers implementation of EmbeddingProvider.

    This class satisfies the EmbeddingProvider protocol through structural
    typing - no explicit inheritance needed.

    Default model: all-MiniLM-L6-v2 (384 dimensions)
    """

    DEFAULT_MODEL = "all-MiniLM-L6-v2"

    def __init__(self, model_name: str | None = None, timeout: float | None = None) -> None:
        """Initialize the local embedding provider.

        Args:
            model_name: Name of the sentence-transformers model.
            timeout: Seconds to wait for one encode call.
        """
        self._model_name = model_name or self.DEFAULT_MODEL
        self._timeout = timeout or settings.embedding_timeout
        self._model: SentenceTransformer | None = None
        self._dimension: int | None = None

    @classmethod
    def create(cls, model_name: str | None = None) -> "LocalEmbeddingProvider":
        """Factory method to create LocalEmbeddingProvider with defaults."""
        return cls(model_name=model_name)

    @property
    def model(self) -> SentenceTransformer:
        """Lazy-load the embedding model."""
        if self._model is None:
            logger.info("Loading embedding model: %s", self._model_name)
            start_time = time.time()
            self._model = SentenceTransformer(self._model_name)
            logger.info("Model loaded in %.2fs", time.time() - start_time)
        return self._model

    @property
    def dimension(self) -> int:
        """Get the embedding vector dimension."""
        if self._dimension is None:
            sample_embedding = self.model.encode(["test"], show_progress_bar=False)
            self._dimension = len(sample_embedding[0])
        return self._dimension

    @property
    def model_name(self) -> str:
        """Get the model name/identifier."""
        return self._model_name

    def _encode_sync(self, text: str) -> list[float]:
        embedding = self.model.encode(
            text,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        if isinstance(embedding, np.ndarray):
            if embedding.ndim == 1:
                return embedding.tolist()
            return embedding[0].tolist()
        return list(embedding)

    async def encode(self, text: str) -> list[float]:
        """Generate embedding vector for a single text.

        Raises:
            EmbeddingFailure: If the model fails or exceeds the timeout
        """
        if not text.strip():
            raise EmbeddingFailure("Cannot embed empty text")

        try:
            return await asyncio.wait_for(asyncio.to_thread(self._encode_sync, text), self._timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingFailure(f"Local embedding timed out after {self._timeout}s") from e
        except (OSError, RuntimeError, ValueError) as e:
            raise EmbeddingFailure(f"Local embedding failed: {e}") from e

    async def is_available(self) -> bool:
        """Check if the model can be loaded."""
        try:
            await asyncio.to_thread(lambda: self.model)
            return True
        except (OSError, RuntimeError, ValueError) as e:
            logger.warning("Local embedding model unavailable: %s", e)
            return False
