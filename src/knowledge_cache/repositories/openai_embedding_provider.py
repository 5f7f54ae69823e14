"""OpenAI embedding provider (default)."""

import logging

import openai
from openai import AsyncOpenAI

from knowledge_cache.config import settings
from knowledge_cache.errors import EmbeddingFailure

logger = logging.getLogger(__name__)


class OpenAIEmbeddingProvider:
    """OpenAI implementation of EmbeddingProvider protocol.

    Default model: text-embedding-3-small (1536 dimensions).
    """

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model_name: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the OpenAI embedding provider.

        Args:
            model_name: Embedding model. Defaults to settings.embedding_model.
            api_key: API key. Defaults to settings.openai_api_key / OPENAI_API_KEY.
            timeout: Request timeout in seconds. Defaults to settings.embedding_timeout.
            client: Preconfigured client (mainly for tests).
        """
        self._model_name = model_name or settings.embedding_model
        self._api_key = api_key or settings.openai_api_key
        self._timeout = timeout or settings.embedding_timeout
        self._client = client

    @classmethod
    def create(cls, model_name: str | None = None) -> "OpenAIEmbeddingProvider":
        """Factory method to create OpenAIEmbeddingProvider with defaults."""
        return cls(model_name=model_name)

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the async OpenAI client."""
        if self._client is None:
            # Retries are left to the caller; a hung request must fail fast.
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout, max_retries=0)
        return self._client

    @property
    def dimension(self) -> int:
        """Get the embedding vector dimension."""
        return self.MODEL_DIMENSIONS.get(self._model_name, 1536)

    @property
    def model_name(self) -> str:
        """Get the model name/identifier."""
        return self._model_name

    async def encode(self, text: str) -> list[float]:
        """Generate embedding vector for a single text.

        Raises:
            EmbeddingFailure: On timeout, quota exhaustion, API errors or empty input
        """
        if not text.strip():
            raise EmbeddingFailure("Cannot embed empty text")

        try:
            response = await self.client.embeddings.create(
                model=self._model_name,
                input=text,
                timeout=self._timeout,
            )
        except openai.APITimeoutError as e:
            raise EmbeddingFailure(f"OpenAI embedding timed out after {self._timeout}s") from e
        except openai.OpenAIError as e:
            raise EmbeddingFailure(f"OpenAI embedding failed: {e}") from e

        if not response.data:
            raise EmbeddingFailure("OpenAI returned no embedding")
        return list(response.data[0].embedding)

    async def is_available(self) -> bool:
        """Check if the embedding API is reachable."""
        try:
            await self.encode("test")
            return True
        except EmbeddingFailure as e:
            logger.warning("OpenAI embedding provider unavailable: %s", e)
            return False

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
