"""Error taxonomy for the knowledge cache.

Every error carries the category and entry id it relates to (when known)
so callers can audit failures without parsing messages.
"""


class KnowledgeCacheError(Exception):
    """Base class for all knowledge cache failures."""

    def __init__(
        self,
        message: str,
        *,
        category: str | None = None,
        entry_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.entry_id = entry_id

    def context(self) -> dict[str, str | None]:
        """Return the audit context for this error."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "category": self.category,
            "entry_id": self.entry_id,
        }

    def __str__(self) -> str:
        details = ", ".join(
            f"{key}={value}"
            for key, value in (("category", self.category), ("entry_id", self.entry_id))
            if value is not None
        )
        return f"{self.message} ({details})" if details else self.message


class ProviderError(KnowledgeCacheError):
    """A network-bound provider failed, timed out or returned garbage."""


class EmbeddingFailure(ProviderError):
    """The embedding provider is unreachable, out of quota or timed out."""


class UpstreamFailure(ProviderError):
    """The generation provider is unreachable, timed out or returned malformed output."""


class StorageFailure(KnowledgeCacheError):
    """Persistence is unavailable or a stored record is corrupt."""


class ValidationFailure(KnowledgeCacheError):
    """Input violates an invariant (embedding dimension, confidence range, ...)."""


class DeadlineExceeded(KnowledgeCacheError):
    """The caller's overall request deadline elapsed."""
