import logging
import os
from dataclasses import dataclass
from functools import lru_cache

import redis.asyncio as redis
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Redis
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")
    knowledge_prefix: str = os.getenv("KNOWLEDGE_PREFIX", "knowledge")

    # Matching
    similarity_threshold: float = float(os.getenv("SIMILARITY_THRESHOLD", "0.85"))
    search_limit: int = int(os.getenv("SEARCH_LIMIT", "3"))
    candidate_window: int = int(os.getenv("CANDIDATE_WINDOW", "50"))
    initial_confidence: float = float(os.getenv("INITIAL_CONFIDENCE", "0.8"))

    # Maintenance
    cleanup_min_confidence: float = float(os.getenv("CLEANUP_MIN_CONFIDENCE", "0.3"))
    cleanup_days_unused: int = int(os.getenv("CLEANUP_DAYS_UNUSED", "90"))

    # Cost model (rough GPT-4 pricing)
    avg_tokens_per_call: int = int(os.getenv("AVG_TOKENS_PER_CALL", "2000"))
    cost_per_1k_tokens: float = float(os.getenv("COST_PER_1K_TOKENS", "0.03"))

    # Embedding
    embedding_backend: str = os.getenv("EMBEDDING_BACKEND", "openai")  # or "ollama" or "local"
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    embedding_timeout: float = float(os.getenv("EMBEDDING_TIMEOUT", "15"))

    # Ollama
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

    # OpenAI
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4-turbo-preview")
    upstream_timeout: float = float(os.getenv("UPSTREAM_TIMEOUT", "60"))

    # Whole request budget for get_response, in seconds
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "120"))

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = os.getenv("API_RELOAD", "false").lower() == "true"

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if not -1 <= self.similarity_threshold <= 1:
            raise ValueError("SIMILARITY_THRESHOLD must be between -1 and 1 for cosine similarity")

        for name in ("initial_confidence", "cleanup_min_confidence"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name.upper()} must be between 0 and 1, got {value}")

        if self.search_limit < 1 or self.candidate_window < 1:
            raise ValueError("SEARCH_LIMIT and CANDIDATE_WINDOW must be positive")

        if self.embedding_backend not in ("openai", "ollama", "local"):
            raise ValueError(
                f"EMBEDDING_BACKEND must be one of ['openai', 'ollama', 'local'], "
                f"got {self.embedding_backend}"
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def get_redis_client() -> redis.Redis:
    """Create an asyncio Redis client instance."""
    return redis.from_url(
        settings.redis_url,
        password=settings.redis_password,
        decode_responses=False,
    )


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the API process and scripts."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
