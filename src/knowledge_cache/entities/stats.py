"""Statistics and maintenance entities."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class TopEntry:
    """A frequently used entry, for diagnostics."""

    id: str
    category: str
    topic: str
    usage_count: int
    confidence: float


@dataclass(frozen=True)
class KnowledgeStats:
    """Aggregate statistics over the knowledge store."""

    total_entries: int
    by_category: dict[str, int]
    average_confidence: float
    total_usage: int
    top_entries: list[TopEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert stats to dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class MaintenanceReport:
    """Outcome of a maintenance run.

    error is set when cleanup failed; the counts are then best effort.
    """

    deleted_entries: int
    remaining_entries: int | None
    average_confidence: float | None
    error: str | None = None


@dataclass
class PerformanceMetrics:
    """Track in-process performance metrics for responder requests."""

    total_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    degraded_lookups: int = 0
    total_lookup_time_ms: float = 0.0
    total_upstream_time_ms: float = 0.0
    upstream_calls: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        if self.total_queries == 0:
            return 0.0
        return self.cache_hits / self.total_queries

    @property
    def avg_lookup_time_ms(self) -> float:
        """Calculate average lookup time."""
        if self.total_queries == 0:
            return 0.0
        return self.total_lookup_time_ms / self.total_queries

    def record_hit(self, lookup_time_ms: float) -> None:
        """Record a cache hit."""
        self.total_queries += 1
        self.cache_hits += 1
        self.total_lookup_time_ms += lookup_time_ms

    def record_miss(self, lookup_time_ms: float, degraded: bool = False) -> None:
        """Record a cache miss, optionally caused by an unhealthy cache."""
        self.total_queries += 1
        self.cache_misses += 1
        self.total_lookup_time_ms += lookup_time_ms
        if degraded:
            self.degraded_lookups += 1

    def record_upstream_call(self, duration_ms: float) -> None:
        """Record an upstream generation call."""
        self.upstream_calls += 1
        self.total_upstream_time_ms += duration_ms

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary."""
        return {
            "total_queries": self.total_queries,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "degraded_lookups": self.degraded_lookups,
            "hit_rate": self.hit_rate,
            "avg_lookup_time_ms": self.avg_lookup_time_ms,
            "total_upstream_time_ms": self.total_upstream_time_ms,
            "upstream_calls": self.upstream_calls,
        }
