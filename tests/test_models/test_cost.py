"""Tests for token usage and cost accounting."""

from unittest.mock import Mock

import pytest

from cellflow.models.cost import (
    MODEL_PRICING,
    APICallMetrics,
    CostBreakdown,
    TokenUsage,
    estimate_cost,
    estimate_usage,
    price_usage,
)


def mock_response(input_tokens, output_tokens, cache_write=0, cache_read=0, request_id=None):
    response = Mock()
    response.usage = Mock()
    response.usage.input_tokens = input_tokens
    response.usage.output_tokens = output_tokens
    response.usage.cache_creation_input_tokens = cache_write
    response.usage.cache_read_input_tokens = cache_read
    response.id = request_id
    return response


class TestTokenUsage:
    """Tests for TokenUsage dataclass."""

    def test_totals_include_cache_tokens(self):
        """Test input totals count cache creation and reads."""
        usage = TokenUsage(
            input_tokens=100,
            output_tokens=40,
            cache_creation_input_tokens=10,
            cache_read_input_tokens=20,
        )
        assert usage.total_input_tokens == 130
        assert usage.total_tokens == 170

    def test_defaults_to_zero(self):
        """Test empty usage."""
        assert TokenUsage().total_tokens == 0


class TestEstimates:
    """Tests for character-based estimates."""

    def test_rounds_each_side_up(self):
        """Test input and output are each rounded up separately."""
        usage = estimate_usage("a" * 9, "b" * 3)
        assert usage.input_tokens == 3
        assert usage.output_tokens == 1
        assert usage.total_tokens == 4

    def test_empty_text(self):
        """Test empty strings estimate to zero tokens."""
        assert estimate_usage("", "").total_tokens == 0

    def test_custom_divisor(self):
        """Test the characters-per-token divisor is configurable."""
        assert estimate_usage("a" * 10, "", chars_per_token=5).input_tokens == 2

    def test_nominal_cost(self):
        """Test estimated cost is tokens times the nominal rate."""
        assert estimate_cost(1500) == pytest.approx(0.0015)
        assert estimate_cost(10, cost_per_token=0.5) == pytest.approx(5.0)


class TestPriceUsage:
    """Tests for price_usage."""

    def test_sonnet_rates(self):
        """Test one million tokens of each category at Sonnet rates."""
        usage = TokenUsage(
            input_tokens=1_000_000,
            output_tokens=1_000_000,
            cache_creation_input_tokens=1_000_000,
            cache_read_input_tokens=1_000_000,
        )
        cost = price_usage(usage, "claude-sonnet-4-5-20250929")

        assert cost.input_cost == pytest.approx(3.00)
        assert cost.output_cost == pytest.approx(15.00)
        assert cost.cache_write_cost == pytest.approx(3.75)
        assert cost.cache_read_cost == pytest.approx(0.30)
        assert cost.total_cost == pytest.approx(22.05)

    def test_unknown_model_uses_default(self):
        """Test unknown models are priced with the default rates."""
        usage = TokenUsage(input_tokens=1000, output_tokens=500)
        assert price_usage(usage, "mystery-model").total_cost == pytest.approx(
            price_usage(usage, "default").total_cost
        )

    def test_every_model_has_all_rates(self):
        """Test the pricing table is complete."""
        for pricing in MODEL_PRICING.values():
            assert set(pricing) == {"input", "output", "cache_write", "cache_read"}
            assert pricing["cache_read"] < pricing["input"] <= pricing["cache_write"]


class TestCostBreakdown:
    """Tests for CostBreakdown dataclass."""

    def test_total_cost(self):
        """Test total sums every category."""
        cost = CostBreakdown(input_cost=0.003, output_cost=0.015, cache_write_cost=0.001, cache_read_cost=0.0001)
        assert cost.total_cost == pytest.approx(0.0191)


class TestAPICallMetrics:
    """Tests for APICallMetrics dataclass."""

    def test_from_response(self):
        """Test usage, cost and request id are taken from the response."""
        metrics = APICallMetrics.from_response(
            mock_response(1_000_000, 100_000, request_id="msg_123"),
            model="claude-sonnet-4-5-20250929",
            wall_time_seconds=2.5,
        )

        assert metrics.usage.input_tokens == 1_000_000
        assert metrics.request_id == "msg_123"
        assert metrics.wall_time_seconds == 2.5
        assert metrics.cost.total_cost == pytest.approx(4.5)

    def test_missing_usage_fields_count_as_zero(self):
        """Test None usage fields are treated as zero."""
        response = mock_response(10, 5)
        response.usage.cache_creation_input_tokens = None
        response.usage.cache_read_input_tokens = None

        metrics = APICallMetrics.from_response(response, model="default", wall_time_seconds=0.1)

        assert metrics.usage.total_tokens == 15

    def test_to_dict(self):
        """Test the serialized form."""
        metrics = APICallMetrics(
            model="claude-haiku-4-5-20251001",
            usage=TokenUsage(input_tokens=1000, output_tokens=500),
            cost=CostBreakdown(input_cost=0.001, output_cost=0.0025),
            wall_time_seconds=1.2,
            request_id="msg_abc",
        )

        data = metrics.to_dict()

        assert data["model"] == "claude-haiku-4-5-20251001"
        assert data["request_id"] == "msg_abc"
        assert data["usage"]["total_tokens"] == 1500
        assert data["cost"]["total_cost"] == pytest.approx(0.0035)
        assert "timestamp" in data
