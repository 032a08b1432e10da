"""Text-generation provider contract."""

from dataclasses import dataclass
from typing import Optional, Protocol

from cellflow.models import APICallMetrics


@dataclass
class ProviderResponse:
    """Generated text plus provider-reported metrics, when available."""

    text: str
    metrics: Optional[APICallMetrics] = None


class TextProvider(Protocol):
    """Turns a system instruction and a prompt into generated text."""

    def generate(
        self,
        system: str,
        prompt: str,
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        """Generate a response.

        Args:
            system: System instruction
            prompt: User content
            timeout: Seconds allowed for the call

        Raises:
            ProviderError: If generation fails
        """
        ...
