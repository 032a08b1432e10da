"""Token usage and cost accounting for cell executions."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


# Pricing per million tokens
# https://www.anthropic.com/pricing
MODEL_PRICING = {
    "claude-sonnet-4-5-20250929": {
        "input": 3.00,
        "output": 15.00,
        "cache_write": 3.75,
        "cache_read": 0.30,
    },
    "claude-haiku-4-5-20251001": {
        "input": 1.00,
        "output": 5.00,
        "cache_write": 1.25,
        "cache_read": 0.10,
    },
    "claude-opus-4-5-20251101": {
        "input": 5.00,
        "output": 25.00,
        "cache_write": 6.25,
        "cache_read": 0.50,
    },
    # Default fallback (use sonnet pricing)
    "default": {
        "input": 3.00,
        "output": 15.00,
        "cache_write": 3.75,
        "cache_read": 0.30,
    },
}

# Fallback accounting when the provider reports no usage
CHARS_PER_TOKEN = 4
COST_PER_TOKEN = 0.000001


@dataclass
class TokenUsage:
    """Token usage breakdown from a provider call."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def total_input_tokens(self) -> int:
        """Total input tokens including cache tokens."""
        return self.input_tokens + self.cache_creation_input_tokens + self.cache_read_input_tokens

    @property
    def total_tokens(self) -> int:
        """Total tokens used."""
        return self.total_input_tokens + self.output_tokens


@dataclass
class CostBreakdown:
    """Cost breakdown for a provider call."""

    input_cost: float = 0.0
    output_cost: float = 0.0
    cache_write_cost: float = 0.0
    cache_read_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        """Total cost in USD."""
        return self.input_cost + self.output_cost + self.cache_write_cost + self.cache_read_cost


def price_usage(usage: TokenUsage, model: str) -> CostBreakdown:
    """Price reported token usage with the model's rates.

    Args:
        usage: Token usage reported by the provider
        model: Model name (unknown models use the default rates)

    Returns:
        CostBreakdown: Cost per token category
    """
    pricing = MODEL_PRICING.get(model, MODEL_PRICING["default"])
    return CostBreakdown(
        input_cost=(usage.input_tokens / 1_000_000) * pricing["input"],
        output_cost=(usage.output_tokens / 1_000_000) * pricing["output"],
        cache_write_cost=(usage.cache_creation_input_tokens / 1_000_000) * pricing["cache_write"],
        cache_read_cost=(usage.cache_read_input_tokens / 1_000_000) * pricing["cache_read"],
    )


def estimate_usage(
    input_text: str,
    output_text: str,
    chars_per_token: int = CHARS_PER_TOKEN,
) -> TokenUsage:
    """Estimate token usage from character counts.

    Rough: each side is rounded up separately.
    """
    return TokenUsage(
        input_tokens=math.ceil(len(input_text) / chars_per_token),
        output_tokens=math.ceil(len(output_text) / chars_per_token),
    )


def estimate_cost(tokens: int, cost_per_token: float = COST_PER_TOKEN) -> float:
    """Nominal cost for estimated tokens."""
    return tokens * cost_per_token


@dataclass
class APICallMetrics:
    """Complete metrics for one provider call."""

    model: str
    usage: TokenUsage
    cost: CostBreakdown
    wall_time_seconds: float
    timestamp: datetime = field(default_factory=datetime.now)
    request_id: Optional[str] = None

    @classmethod
    def from_response(
        cls,
        response,
        model: str,
        wall_time_seconds: float,
    ) -> "APICallMetrics":
        """Create metrics from an Anthropic API response.

        Args:
            response: The Message response from anthropic SDK
            model: Model name used
            wall_time_seconds: Wall clock time for the API call

        Returns:
            APICallMetrics: Populated metrics object
        """
        usage_data = response.usage
        usage = TokenUsage(
            input_tokens=getattr(usage_data, "input_tokens", 0) or 0,
            output_tokens=getattr(usage_data, "output_tokens", 0) or 0,
            cache_creation_input_tokens=getattr(usage_data, "cache_creation_input_tokens", 0) or 0,
            cache_read_input_tokens=getattr(usage_data, "cache_read_input_tokens", 0) or 0,
        )

        return cls(
            model=model,
            usage=usage,
            cost=price_usage(usage, model),
            wall_time_seconds=wall_time_seconds,
            request_id=getattr(response, "id", None),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization.

        Returns:
            dict: Serializable dictionary
        """
        return {
            "model": self.model,
            "wall_time_seconds": self.wall_time_seconds,
            "timestamp": self.timestamp.isoformat(),
            "request_id": self.request_id,
            "usage": {
                "input_tokens": self.usage.input_tokens,
                "output_tokens": self.usage.output_tokens,
                "cache_creation_input_tokens": self.usage.cache_creation_input_tokens,
                "cache_read_input_tokens": self.usage.cache_read_input_tokens,
                "total_tokens": self.usage.total_tokens,
            },
            "cost": {
                "input_cost": self.cost.input_cost,
                "output_cost": self.cost.output_cost,
                "cache_write_cost": self.cost.cache_write_cost,
                "cache_read_cost": self.cost.cache_read_cost,
                "total_cost": self.cost.total_cost,
            },
        }
