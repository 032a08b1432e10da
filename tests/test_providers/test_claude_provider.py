"""Tests for the Claude provider."""

from unittest.mock import Mock, patch

import anthropic
import httpx
import pytest

from cellflow import CellTimeoutError, ProviderError
from cellflow.providers import ClaudeProvider

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def make_message(text, input_tokens=200, output_tokens=50):
    """Build a mock Message response."""
    message = Mock()
    message.content = [Mock(text=text)]
    message.usage = Mock()
    message.usage.input_tokens = input_tokens
    message.usage.output_tokens = output_tokens
    message.usage.cache_creation_input_tokens = 0
    message.usage.cache_read_input_tokens = 0
    message.id = "msg_test_123"
    return message


class TestClaudeProvider:
    """Tests for ClaudeProvider class."""

    @patch("cellflow.providers.claude.anthropic.Anthropic")
    def test_generate_success(self, mock_anthropic):
        """Test a successful call returns text and metrics."""
        mock_client = Mock()
        mock_anthropic.return_value = mock_client
        mock_client.messages.create.return_value = make_message("Three new customers")

        provider = ClaudeProvider(api_key="test-key")
        response = provider.generate("system text", "List new customers", timeout=30.0)

        assert response.text == "Three new customers"
        assert response.metrics.usage.input_tokens == 200
        assert response.metrics.usage.output_tokens == 50
        assert response.metrics.request_id == "msg_test_123"
        assert provider.get_last_call_metrics() is response.metrics

        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["system"] == "system text"
        assert kwargs["messages"] == [{"role": "user", "content": "List new customers"}]
        assert kwargs["timeout"] == 30.0
        assert kwargs["model"] == "claude-sonnet-4-5-20250929"

    @patch("cellflow.providers.claude.anthropic.Anthropic")
    def test_joins_text_blocks(self, mock_anthropic):
        """Test multiple text blocks are concatenated."""
        mock_client = Mock()
        mock_anthropic.return_value = mock_client
        message = make_message("")
        message.content = [Mock(text="Hello, "), Mock(text="world")]
        mock_client.messages.create.return_value = message

        response = ClaudeProvider(api_key="test-key").generate("s", "p")

        assert response.text == "Hello, world"
        assert "timeout" not in mock_client.messages.create.call_args.kwargs

    @patch("cellflow.providers.claude.anthropic.Anthropic")
    def test_timeout_maps_to_cell_timeout(self, mock_anthropic):
        """Test SDK timeouts become CellTimeoutError."""
        mock_client = Mock()
        mock_anthropic.return_value = mock_client
        mock_client.messages.create.side_effect = anthropic.APITimeoutError(request=REQUEST)

        with pytest.raises(CellTimeoutError):
            ClaudeProvider(api_key="test-key").generate("s", "p", timeout=1.0)

    @patch("cellflow.providers.claude.anthropic.Anthropic")
    def test_api_error(self, mock_anthropic):
        """Test SDK errors become ProviderError."""
        mock_client = Mock()
        mock_anthropic.return_value = mock_client
        mock_client.messages.create.side_effect = anthropic.APIConnectionError(request=REQUEST)

        with pytest.raises(ProviderError, match="Claude API error"):
            ClaudeProvider(api_key="test-key").generate("s", "p")

    @patch("cellflow.providers.claude.anthropic.Anthropic")
    def test_generic_error(self, mock_anthropic):
        """Test unexpected failures become ProviderError."""
        mock_client = Mock()
        mock_anthropic.return_value = mock_client
        mock_client.messages.create.side_effect = Exception("API Error")

        provider = ClaudeProvider(api_key="test-key")
        with pytest.raises(ProviderError, match="Failed to generate response"):
            provider.generate("s", "p")
        assert provider.get_last_call_metrics() is None
