"""Cost savings estimate for cache hits."""

from dataclasses import asdict, dataclass

from knowledge_cache.config import settings


@dataclass(frozen=True)
class CostSavings:
    """Estimated savings from answering queries out of the cache."""

    api_calls_saved: int
    estimated_tokens_saved: int
    estimated_cost_saved: float

    def to_dict(self) -> dict[str, float | int]:
        """Convert savings to dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class CostModel:
    """Flat per-call cost model.

    Attributes:
        avg_tokens_per_call: Average prompt + completion tokens per upstream call
        cost_per_1k_tokens: Blended price per 1000 tokens
    """

    avg_tokens_per_call: int = settings.avg_tokens_per_call
    cost_per_1k_tokens: float = settings.cost_per_1k_tokens

    def estimate(self, api_calls_saved: int) -> CostSavings:
        """Estimate savings for a number of avoided upstream calls."""
        tokens = api_calls_saved * self.avg_tokens_per_call
        return CostSavings(
            api_calls_saved=api_calls_saved,
            estimated_tokens_saved=tokens,
            estimated_cost_saved=round(tokens / 1000 * self.cost_per_1k_tokens, 2),
        )
