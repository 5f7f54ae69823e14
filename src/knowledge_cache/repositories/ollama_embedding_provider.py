"""Ollama-based embedding provider.

Uses Ollama's local API to generate embeddings. Ollama serves models locally
without requiring an API key.

Requirements:
    - Ollama installed: https://ollama.com
    - Model pulled: `ollama pull nomic-embed-text`
    - Ollama running: `ollama serve` (usually runs automatically)

Models available:
- nomic-embed-text (137M params, 768 dims)
- mxbai-embed-large (335M params, 1024 dims)
- all-minilm (22M params, 384 dims)
"""

import logging

import httpx

from knowledge_cache.config import settings
from knowledge_cache.errors import EmbeddingFailure

logger = logging.getLogger(__name__)


class OllamaEmbeddingProvider:
    """Ollama-based implementation of EmbeddingProvider protocol.

    This class satisfies the EmbeddingProvider protocol through structural
    typing - no explicit inheritance needed.

    Uses Ollama's local API to generate embeddings. The API endpoint is
    http://localhost:11434/api/embed by default. Every request is bounded
    by the client timeout.

    Example:
        ```python
        provider = OllamaEmbeddingProvider.create(
            model_name="nomic-embed-text",
            base_url="http://localhost:11434"
        )

        embedding = await provider.encode("Na 130 mmol/L")
        print(len(embedding))  # 768
        ```
    """

    # Known model dimensions (for common models)
    MODEL_DIMENSIONS = {
        "embeddinggemma": 768,
        "nomic-embed-text": 768,
        "mxbai-embed-large": 1024,
        "all-minilm": 384,
    }

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Ollama embedding provider.

        Args:
            model_name: Name of the Ollama model.
                       Defaults to settings.embedding_model.
            base_url: Ollama API base URL.
                     Defaults to settings.ollama_base_url.
            timeout: Request timeout in seconds. Defaults to settings.embedding_timeout.
            client: Preconfigured HTTP client (mainly for tests).
        """
        self._model_name = model_name or settings.embedding_model
        self._base_url = base_url or settings.ollama_base_url
        self._timeout = timeout or settings.embedding_timeout
        self._dimension: int | None = None
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        return self._client

    @classmethod
    def create(
        cls,
        model_name: str | None = None,
        base_url: str | None = None,
    ) -> "OllamaEmbeddingProvider":
        """Factory method to create OllamaEmbeddingProvider with defaults.

        Args:
            model_name: Model name. If None, uses settings.
            base_url: Ollama API URL. If None, uses settings.

        Returns:
            Configured OllamaEmbeddingProvider
        """
        return cls(model_name=model_name, base_url=base_url)

    @property
    def dimension(self) -> int:
        """Get the embedding vector dimension.

        Known models report their documented dimension; otherwise the
        dimension of the last encoded vector, or 768 before any call.
        """
        if self._dimension is None:
            return self.MODEL_DIMENSIONS.get(self._model_name, 768)
        return self._dimension

    @property
    def model_name(self) -> str:
        """Get the model name/identifier."""
        return self._model_name

    async def encode(self, text: str) -> list[float]:
        """Generate embedding vector for a single text.

        Args:
            text: The text to encode

        Returns:
            The embedding vector as a list of floats

        Raises:
            EmbeddingFailure: If the Ollama request fails, times out or
                returns an unexpected body
        """
        if not text.strip():
            raise EmbeddingFailure("Cannot embed empty text")

        url = f"{self._base_url}/api/embed"
        payload = {
            "model": self._model_name,
            "input": text,
        }

        try:
            response = await self.client.post(url, json=payload, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise EmbeddingFailure(f"Ollama embedding timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            error_msg = f"Ollama API error: {e}"
            if "connection refused" in str(e).lower():
                error_msg += " (is Ollama running? try: ollama serve)"
            raise EmbeddingFailure(error_msg) from e
        except ValueError as e:
            raise EmbeddingFailure(f"Ollama returned invalid JSON: {e}") from e

        # Ollama returns {"embeddings": [[...]]} for single input
        if data.get("embeddings"):
            vector = data["embeddings"][0]
        elif "embedding" in data:
            vector = data["embedding"]
        else:
            raise EmbeddingFailure(f"Unexpected Ollama response format: {list(data)}")

        self._dimension = len(vector)
        return [float(x) for x in vector]

    async def is_available(self) -> bool:
        """Check if Ollama is running and the model is available."""
        try:
            await self.encode("test")
            return True
        except EmbeddingFailure as e:
            logger.warning("Ollama embedding provider unavailable: %s", e)
            return False

    async def close(self) -> None:
        """Close the async HTTP client.

        Should be called when shutting down the application.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
