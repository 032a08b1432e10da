"""Text-generation providers."""

from cellflow.providers.base import ProviderResponse, TextProvider
from cellflow.providers.claude import ClaudeProvider

__all__ = ["ClaudeProvider", "ProviderResponse", "TextProvider"]
