"""Claude-backed text-generation provider."""

import logging
import time
from typing import Optional

import anthropic

from cellflow import CellTimeoutError, ProviderError
from cellflow.models import APICallMetrics
from cellflow.providers.base import ProviderResponse

logger = logging.getLogger(__name__)


class ClaudeProvider:
    """Wrapper for the Claude API used to execute notebook cells.

    Each call is a single user message with the cell's system instruction.
    Token usage reported by the API is kept on the response for cost accounting.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 4000,
    ):
        """Initialize Claude provider.

        Args:
            api_key: Anthropic API key
            model: Claude model to use
            max_tokens: Maximum tokens for response
        """
        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self._last_call_metrics: Optional[APICallMetrics] = None

    def generate(
        self,
        system: str,
        prompt: str,
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        """Generate a response for one cell.

        Args:
            system: System instruction for the cell type
            prompt: Interpolated cell content
            timeout: Seconds allowed for the request (None uses the SDK default)

        Returns:
            ProviderResponse: Response text and usage metrics

        Raises:
            CellTimeoutError: If the request times out
            ProviderError: If the API call fails
        """
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        }
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            start = time.monotonic()
            message = self.client.messages.create(**kwargs)
            wall_time = time.monotonic() - start

            response_text = "".join(
                getattr(block, "text", "") for block in message.content
            )

            metrics = APICallMetrics.from_response(
                message,
                model=self.model,
                wall_time_seconds=wall_time,
            )
            self._last_call_metrics = metrics
            logger.debug(
                f"Claude call took {wall_time:.2f}s, {metrics.usage.total_tokens} tokens"
            )

            return ProviderResponse(text=response_text, metrics=metrics)

        except anthropic.APITimeoutError as e:
            raise CellTimeoutError(f"Claude API timed out after {timeout}s") from e
        except anthropic.APIError as e:
            raise ProviderError(f"Claude API error: {e}") from e
        except Exception as e:
            raise ProviderError(f"Failed to generate response: {e}") from e

    def get_last_call_metrics(self) -> Optional[APICallMetrics]:
        """Metrics of the most recent successful call, if any."""
        return self._last_call_metrics
