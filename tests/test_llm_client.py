"""Unit tests for LLMClient."""
import sys
sys.path.insert(0, 'backend')

import time
import pytest
from datetime import datetime, timezone
from unittest.mock import Mock, patch
from models.session import Message
from services.llm_client import LLMClient, LLMClientError
from groq import RateLimitError, AuthenticationError, APITimeoutError, APIConnectionError

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

HISTORY = [
    Message.user("I used to think it was natural", START),
    Message.assistant("What changed?", START),
    Message.user("I read the research", START),
]


def completion(text):
    response = Mock()
    response.choices = [Mock(message=Mock(content=text))]
    return response


class TestLLMClient:
    """Test suite for LLMClient class."""

    def test_initialization_with_api_key(self):
        """Test LLMClient initializes with provided API key."""
        client = LLMClient(api_key="test_key")
        assert client.api_key == "test_key"
        client.close()

    def test_initialization_without_api_key_raises_error(self):
        """Test LLMClient raises error when no API key provided."""
        with patch('services.llm_client.GROQ_API_KEY', None):
            with pytest.raises(ValueError, match="GROQ_API_KEY must be provided"):
                LLMClient()

    def test_build_messages_puts_system_prompt_first(self):
        """Test message building with system prompt and history."""
        messages = LLMClient.build_messages(HISTORY, "Be curious.")

        assert messages[0] == {"role": "system", "content": "Be curious."}
        assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user"]
        assert messages[-1]["content"] == "I read the research"

    def test_build_messages_without_system_prompt(self):
        messages = LLMClient.build_messages(HISTORY, None)

        assert messages[0]["role"] == "user"
        assert len(messages) == 3

    @patch('services.llm_client.Groq')
    def test_generate_reply_success(self, mock_groq_class):
        """Test successful reply generation."""
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = completion("  What research was it?  ")
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key", model="llama-3.1-8b-instant", max_tokens=150)
        reply = client.generate_reply(HISTORY, "Be curious.")

        assert reply == "What research was it?"
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.1-8b-instant"
        assert kwargs["max_tokens"] == 150
        assert kwargs["messages"][0]["role"] == "system"
        mock_groq_class.assert_called_once_with(api_key="test_key", timeout=client.timeout_seconds, max_retries=0)
        client.close()

    @patch('services.llm_client.Groq')
    def test_generate_reply_times_out(self, mock_groq_class):
        """Test that a slow provider call is abandoned after the timeout."""
        def slow_create(**kwargs):
            time.sleep(1.0)
            return completion("too late")

        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = slow_create
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key", timeout_seconds=0.05)
        start = time.time()
        with pytest.raises(LLMClientError) as exc_info:
            client.generate_reply(HISTORY, None)

        assert time.time() - start < 0.9
        assert exc_info.value.error.code == "connection_timeout"
        client.close()

    @patch('services.llm_client.Groq')
    def test_generate_reply_empty_response(self, mock_groq_class):
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = completion("   ")
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")
        with pytest.raises(LLMClientError) as exc_info:
            client.generate_reply(HISTORY, None)

        assert exc_info.value.error.code == "server_error"
        client.close()

    @patch('services.llm_client.Groq')
    def test_generate_handles_unknown_error(self, mock_groq_class):
        """Test that unexpected errors are raised with structured error."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = Exception("API Error")
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(LLMClientError) as exc_info:
            client.generate_reply(HISTORY, None)

        error = exc_info.value.error
        assert error.code == "server_error"
        assert "Unexpected error" in error.message
        assert error.details["model"] == client.model
        assert error.details["error_type"] == "Exception"
        client.close()

    @patch('services.llm_client.Groq')
    def test_generate_handles_rate_limit_error(self, mock_groq_class):
        """Test that rate limit errors are handled with retry suggestion."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = RateLimitError(
            message="Rate limit exceeded",
            response=Mock(status_code=429),
            body=None
        )
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(LLMClientError) as exc_info:
            client.generate_reply(HISTORY, None)

        error = exc_info.value.error
        assert error.code == "rate_limit"
        assert "Rate limit exceeded" in error.message
        assert error.details["retry_after"] == 60
        client.close()

    @patch('services.llm_client.Groq')
    def test_generate_handles_authentication_error(self, mock_groq_class):
        """Test that authentication errors map to a generic server error."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = AuthenticationError(
            message="Invalid API key",
            response=Mock(status_code=401),
            body=None
        )
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(LLMClientError) as exc_info:
            client.generate_reply(HISTORY, None)

        assert exc_info.value.error.code == "server_error"
        assert "Authentication failed" in exc_info.value.error.message
        client.close()

    @patch('services.llm_client.Groq')
    def test_generate_handles_api_timeout_error(self, mock_groq_class):
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = APITimeoutError(request=Mock())
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(LLMClientError) as exc_info:
            client.generate_reply(HISTORY, None)

        assert exc_info.value.error.code == "connection_timeout"
        client.close()

    @patch('services.llm_client.Groq')
    def test_generate_handles_connection_error(self, mock_groq_class):
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = APIConnectionError(request=Mock())
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(LLMClientError) as exc_info:
            client.generate_reply(HISTORY, None)

        assert exc_info.value.error.code == "network_error"
        client.close()
