"""Unit tests for GroqModelClient."""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import pytest
from unittest.mock import Mock, patch
from groq import (
    RateLimitError,
    AuthenticationError,
    BadRequestError,
    APITimeoutError,
    APIConnectionError,
    InternalServerError,
)
from models.completion import FinishReason, ModelRequest, PromptMessage, ModelParameters
from models.errors import ModelUnavailable, ModelRequestRejected
from models.tenant import TenantContext
from services.llm_client import GroqModelClient, is_transient_model_error
from services.retry_policy import RetryPolicy
from services.deadline import Deadline


def make_request():
    return ModelRequest(
        tenant=TenantContext("t1"),
        messages=(PromptMessage(role="user", content="What is the Pro plan price?"),),
        parameters=ModelParameters(max_tokens=200, temperature=0.2)
    )


def make_completion(text="The Pro plan costs $29/month.", finish_reason="stop"):
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=text), finish_reason=finish_reason)]
    mock_response.usage = Mock(prompt_tokens=150, completion_tokens=12)
    return mock_response


def rate_limit_error():
    return RateLimitError(
        message="Rate limit exceeded",
        response=Mock(status_code=429, headers={"retry-after": "2"}),
        body=None
    )


def auth_error():
    return AuthenticationError(
        message="Invalid API key",
        response=Mock(status_code=401, headers={}),
        body=None
    )


@pytest.fixture
def mock_groq():
    """Patch the Groq SDK class and return the mocked client instance."""
    with patch('services.llm_client.Groq') as mock_groq_class:
        mock_client = Mock()
        mock_groq_class.return_value = mock_client
        yield mock_client


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def client(mock_groq, sleep):
    """Create a client with four attempts and no real sleeping."""
    policy = RetryPolicy(max_attempts=4, base_delay=0.5, multiplier=2.0, max_delay=8.0, jitter=0)
    return GroqModelClient(api_key="test_key", model="llama-3.3-70b-versatile", retry_policy=policy, sleep=sleep)


class TestGroqModelClient:
    """Test suite for GroqModelClient."""

    def test_initialization_with_api_key(self, mock_groq):
        """Test client initializes with provided API key."""
        client = GroqModelClient(api_key="test_key")
        assert client.api_key == "test_key"

    def test_initialization_without_api_key_raises_error(self):
        """Test client raises error when no API key provided."""
        with patch('services.llm_client.GROQ_API_KEY', None):
            with pytest.raises(ValueError, match="GROQ_API_KEY must be provided"):
                GroqModelClient()

    def test_sdk_retries_disabled(self):
        """Test that the SDK's built-in retries are turned off."""
        with patch('services.llm_client.Groq') as mock_groq_class:
            GroqModelClient(api_key="test_key", timeout=12.0)
        kwargs = mock_groq_class.call_args.kwargs
        assert kwargs["max_retries"] == 0
        assert kwargs["timeout"] == 12.0

    def test_complete_success(self, client, mock_groq):
        """Test successful response generation."""
        mock_groq.chat.completions.create.return_value = make_completion()

        response = client.complete(make_request())

        assert response.text == "The Pro plan costs $29/month."
        assert response.finish_reason is FinishReason.COMPLETE
        assert response.tokens_input == 150
        assert response.tokens_output == 12
        assert response.model_used == "llama-3.3-70b-versatile"
        assert response.attempts == 1
        assert isinstance(response.latency_ms, int)
        assert response.latency_ms >= 0

    def test_complete_sends_messages_and_parameters(self, client, mock_groq):
        """Test that role-tagged messages and parameters reach the SDK."""
        mock_groq.chat.completions.create.return_value = make_completion()

        client.complete(make_request())

        kwargs = mock_groq.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "What is the Pro plan price?"}]
        assert kwargs["max_tokens"] == 200
        assert kwargs["temperature"] == 0.2
        assert kwargs["timeout"] == client.timeout

    @pytest.mark.parametrize("raw, expected", [
        ("stop", FinishReason.COMPLETE),
        ("length", FinishReason.TRUNCATED),
        ("content_filter", FinishReason.REFUSED),
        ("tool_calls", FinishReason.COMPLETE),
    ])
    def test_finish_reason_mapping(self, client, mock_groq, raw, expected):
        """Test mapping of provider finish reasons."""
        mock_groq.chat.completions.create.return_value = make_completion(finish_reason=raw)
        assert client.complete(make_request()).finish_reason is expected

    def test_throttling_retries_until_exhausted(self, client, mock_groq, sleep):
        """Test that throttling is retried exactly max_attempts times, then ModelUnavailable."""
        mock_groq.chat.completions.create.side_effect = rate_limit_error()

        with pytest.raises(ModelUnavailable) as exc_info:
            client.complete(make_request())

        assert mock_groq.chat.completions.create.call_count == 4
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0, 2.0]

        error = exc_info.value
        assert error.attempts == 4
        assert error.error.code == "MODEL_UNAVAILABLE"
        assert error.error.details["last_error_code"] == "RATE_LIMIT_ERROR"
        assert error.last_error.error.code == "RATE_LIMIT_ERROR"
        assert isinstance(error.last_error.__cause__, RateLimitError)

    def test_authentication_error_fails_without_retry(self, client, mock_groq, sleep):
        """Test that authentication failures are not retried."""
        mock_groq.chat.completions.create.side_effect = auth_error()

        with pytest.raises(ModelRequestRejected) as exc_info:
            client.complete(make_request())

        assert mock_groq.chat.completions.create.call_count == 1
        sleep.assert_not_called()
        assert exc_info.value.error.code == "AUTHENTICATION_ERROR"
        assert "Authentication failed" in exc_info.value.error.message

    def test_malformed_request_fails_without_retry(self, client, mock_groq, sleep):
        """Test that malformed requests are not retried."""
        mock_groq.chat.completions.create.side_effect = BadRequestError(
            message="bad", response=Mock(status_code=400, headers={}), body=None
        )

        with pytest.raises(ModelRequestRejected) as exc_info:
            client.complete(make_request())

        assert mock_groq.chat.completions.create.call_count == 1
        assert exc_info.value.error.code == "MALFORMED_REQUEST"

    def test_transient_errors_then_success(self, client, mock_groq, sleep):
        """Test recovery after timeout, connection and server errors."""
        mock_groq.chat.completions.create.side_effect = [
            APITimeoutError(request=Mock()),
            APIConnectionError(request=Mock()),
            InternalServerError(message="down", response=Mock(status_code=503, headers={}), body=None),
            make_completion(text="Recovered"),
        ]

        response = client.complete(make_request())

        assert response.text == "Recovered"
        assert response.attempts == 4
        assert sleep.call_count == 3

    def test_expired_deadline_skips_call(self, client, mock_groq):
        """Test that no request is sent after the deadline expired."""
        with pytest.raises(ModelUnavailable) as exc_info:
            client.complete(make_request(), deadline=Deadline(timeout=0))

        mock_groq.chat.completions.create.assert_not_called()
        assert exc_info.value.error.code == "DEADLINE_EXCEEDED"

    def test_attempt_timeout_bounded_by_deadline(self, client, mock_groq):
        """Test that the per-attempt timeout never exceeds the time left."""
        mock_groq.chat.completions.create.return_value = make_completion()

        client.complete(make_request(), deadline=Deadline(timeout=2.0))

        assert mock_groq.chat.completions.create.call_args.kwargs["timeout"] <= 2.0

    def test_health_check(self, client, mock_groq):
        """Test the model health probe."""
        assert client.health_check() is True
        mock_groq.models.list.assert_called_once()

    def test_health_check_failure(self, client, mock_groq):
        """Test that an unreachable endpoint reports unhealthy."""
        mock_groq.models.list.side_effect = APIConnectionError(request=Mock())
        assert client.health_check() is False

    def test_transient_classification(self, client, mock_groq):
        """Test the transient predicate on client errors."""
        mock_groq.chat.completions.create.side_effect = auth_error()
        with pytest.raises(ModelRequestRejected) as exc_info:
            client.complete(make_request())
        assert is_transient_model_error(exc_info.value) is False
        assert is_transient_model_error(RuntimeError("other")) is False
