"""Unit tests for error categories and classification."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from services import errors
from services.llm_client import LLMClientError, LLMError


class TestFactories:
    """Each lifecycle error carries its category and HTTP status."""

    @pytest.mark.parametrize("error,code,status", [
        (errors.validation_error("bad"), "validation_error", 400),
        (errors.participant_not_found("p-1"), "participant_not_found", 404),
        (errors.conversation_not_found("s-1"), "conversation_not_found", 404),
        (errors.conversation_timeout("s-1"), "timeout", 410),
        (errors.data_error("s-1"), "data_error", 404),
        (errors.service_unavailable(), "service_unavailable", 503),
    ])
    def test_category_and_status(self, error, code, status):
        assert error.code == code
        assert error.status_code == status
        assert str(error) == error.error.message

    def test_details_carry_the_id(self):
        assert errors.conversation_not_found("s-1").error.details == {"session_id": "s-1"}


class TestClassifyException:
    """Unexpected exceptions map to user-facing categories."""

    @pytest.mark.parametrize("exc,category", [
        (TimeoutError(), "connection_timeout"),
        (Exception("socket timed out"), "connection_timeout"),
        (Exception("read ECONNRESET"), "connection_timeout"),
        (ConnectionError(), "network_error"),
        (Exception("getaddrinfo ENOTFOUND api.groq.com"), "network_error"),
        (Exception("Rate limit reached"), "rate_limit"),
        (ValueError("bad value"), "server_error"),
    ])
    def test_categories(self, exc, category):
        assert errors.classify_exception(exc)[0] == category

    def test_provider_code_wins(self):
        exc = LLMClientError(LLMError("rate_limit", "Too many", {}))
        assert errors.classify_exception(exc) == ("rate_limit", errors.FAILURE_MESSAGES["rate_limit"])

    def test_same_exception_same_answer(self):
        exc = RuntimeError("kaboom")
        assert errors.classify_exception(exc) == errors.classify_exception(exc)
        assert errors.classify_exception(exc)[1] == errors.GENERIC_MESSAGE
