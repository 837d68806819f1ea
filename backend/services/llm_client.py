"""Model client contract and the Groq API implementation."""
import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from groq import Groq
from groq import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
    UnprocessableEntityError,
)

from config import GROQ_API_KEY, MODEL_NAME, MODEL_BASE_URL, MODEL_TIMEOUT
from models.completion import FinishReason, ModelRequest, ModelResponse
from models.errors import (
    DeadlineExceeded,
    ModelClientError,
    ModelError,
    ModelRequestRejected,
    ModelUnavailable,
)
from services.deadline import Deadline
from services.retry_policy import RetryExhausted, RetryPolicy

logger = logging.getLogger(__name__)

# Error codes the retry policy treats as transient
TRANSIENT_CODES = frozenset({
    "RATE_LIMIT_ERROR",
    "TIMEOUT_ERROR",
    "CONNECTION_ERROR",
    "SERVER_ERROR",
})

_FINISH_REASONS = {
    "stop": FinishReason.COMPLETE,
    "length": FinishReason.TRUNCATED,
    "content_filter": FinishReason.REFUSED,
}


def is_transient_model_error(error: BaseException) -> bool:
    """Classification predicate for RetryPolicy."""
    return isinstance(error, ModelClientError) and error.error.code in TRANSIENT_CODES


class ModelClient(ABC):
    """Text-generation backend used by the agent loop."""

    @abstractmethod
    def complete(self, request: ModelRequest, deadline: Optional[Deadline] = None) -> ModelResponse:
        """
        Generate a reply for ``request``.

        Raises:
            ModelUnavailable: Transient failures exhausted the retry budget
            ModelRequestRejected: Non-transient failure, not retried
        """

    @abstractmethod
    def health_check(self) -> bool:
        """Probe the backend without generating text."""

    def close(self) -> None:
        """Release network connections."""


class GroqModelClient(ModelClient):
    """Client for interfacing with Groq API for text generation."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = MODEL_NAME,
        base_url: Optional[str] = MODEL_BASE_URL,
        timeout: float = MODEL_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the model client with a Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Model name used for every completion
            base_url: Optional endpoint override
            timeout: Per-attempt timeout in seconds
            retry_policy: Backoff settings (transient classification is always ours)
            sleep: Backoff sleep function, mainly for tests
            rng: Jitter source, mainly for tests
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.model = model
        self.timeout = timeout
        policy = retry_policy or RetryPolicy()
        self.retry_policy = RetryPolicy(
            max_attempts=policy.max_attempts,
            base_delay=policy.base_delay,
            multiplier=policy.multiplier,
            max_delay=policy.max_delay,
            jitter=policy.jitter,
            is_transient=is_transient_model_error
        )
        self._sleep = sleep
        self._rng = rng

        # SDK retries are disabled; RetryPolicy is the only retry loop.
        self.client = Groq(api_key=self.api_key, base_url=base_url, timeout=timeout, max_retries=0)
        logger.info(f"GroqModelClient initialized successfully: model={model}")

    def complete(self, request: ModelRequest, deadline: Optional[Deadline] = None) -> ModelResponse:
        start_time = time.time()
        tenant_id = request.tenant.tenant_id

        def attempt_once(attempt: int) -> ModelResponse:
            response = self._generate(request, deadline, attempt)
            response.attempts = attempt
            return response

        try:
            response = self.retry_policy.call(
                attempt_once,
                deadline=deadline,
                sleep=self._sleep,
                rng=self._rng
            )
        except RetryExhausted as e:
            latency_ms = int((time.time() - start_time) * 1000)
            last = e.last_error
            error = ModelError(
                code="MODEL_UNAVAILABLE",
                message="The model is temporarily unavailable. Please try again later.",
                details={
                    "model": self.model,
                    "attempts": e.attempts,
                    "reason": e.reason,
                    "latency_ms": latency_ms,
                    "last_error_code": last.error.code if isinstance(last, ModelClientError) else type(last).__name__,
                }
            )
            logger.error(
                f"Model unavailable after {e.attempts} attempt(s): reason={e.reason}",
                extra={"tenant_id": tenant_id, "error_code": error.code, "latency_ms": latency_ms}
            )
            raise ModelUnavailable(error, attempts=e.attempts, last_error=last) from last

        logger.info(
            f"Generated response: model={response.model_used}, "
            f"input_tokens={response.tokens_input}, output_tokens={response.tokens_output}, "
            f"finish_reason={response.finish_reason.value}, attempts={response.attempts}",
            extra={"tenant_id": tenant_id, "latency_ms": response.latency_ms}
        )
        return response

    def health_check(self) -> bool:
        try:
            self.client.models.list(timeout=min(self.timeout, 5.0))
            return True
        except (APIStatusError, APIConnectionError) as e:
            logger.warning(f"Model health probe failed: {type(e).__name__}", extra={"component": "model"})
            return False

    def close(self) -> None:
        self.client.close()

    def _generate(self, request: ModelRequest, deadline: Optional[Deadline], attempt: int) -> ModelResponse:
        """
        One call to the chat completions endpoint.

        Raises:
            ModelClientError: Transient failure, classified by error code
            ModelRequestRejected: Non-transient failure
            ModelUnavailable: The deadline ran out before the call started
        """
        if deadline is not None:
            try:
                deadline.check("model call")
            except DeadlineExceeded as e:
                error = ModelError(
                    code="DEADLINE_EXCEEDED",
                    message=str(e),
                    details={"model": self.model, "attempts": attempt - 1}
                )
                raise ModelUnavailable(error, attempts=attempt - 1, last_error=e) from e
            timeout = deadline.bound(self.timeout)
        else:
            timeout = self.timeout

        start_time = time.time()
        try:
            logger.debug(f"Generating response with model: {self.model}", extra={"attempt": attempt})

            response = self.client.chat.completions.create(
                model=self.model,
                messages=[message.as_dict() for message in request.messages],
                max_tokens=request.parameters.max_tokens,
                temperature=request.parameters.temperature,
                timeout=timeout
            )
        except RateLimitError as e:
            raise self._error(
                "RATE_LIMIT_ERROR", "Rate limit exceeded.", e, start_time, attempt,
                retry_after=e.response.headers.get("retry-after") if e.response is not None else None
            ) from e
        except (AuthenticationError, PermissionDeniedError) as e:
            raise self._error(
                "AUTHENTICATION_ERROR", "Authentication failed. Please check the model credentials.",
                e, start_time, attempt, rejected=True
            ) from e
        except (BadRequestError, UnprocessableEntityError) as e:
            raise self._error(
                "MALFORMED_REQUEST", "The model rejected the request as malformed.",
                e, start_time, attempt, rejected=True
            ) from e
        except APITimeoutError as e:
            raise self._error("TIMEOUT_ERROR", "Request timed out.", e, start_time, attempt) from e
        except APIConnectionError as e:
            raise self._error("CONNECTION_ERROR", "Could not reach the model endpoint.", e, start_time, attempt) from e
        except InternalServerError as e:
            raise self._error("SERVER_ERROR", "The model endpoint returned a server error.", e, start_time, attempt) from e
        except APIStatusError as e:
            raise self._error(
                "API_ERROR", f"Groq API error: status {e.status_code}",
                e, start_time, attempt, rejected=True
            ) from e

        latency_ms = int((time.time() - start_time) * 1000)
        choice = response.choices[0]
        usage = response.usage

        return ModelResponse(
            text=choice.message.content or "",
            finish_reason=_FINISH_REASONS.get(choice.finish_reason, FinishReason.COMPLETE),
            latency_ms=latency_ms,
            tokens_input=usage.prompt_tokens if usage else 0,
            tokens_output=usage.completion_tokens if usage else 0,
            model_used=self.model
        )

    def _error(
        self,
        code: str,
        message: str,
        cause: Exception,
        start_time: float,
        attempt: int,
        rejected: bool = False,
        **details
    ) -> ModelClientError:
        latency_ms = int((time.time() - start_time) * 1000)
        error = ModelError(
            code=code,
            message=message,
            details={
                "model": self.model,
                "attempt": attempt,
                "latency_ms": latency_ms,
                "error_type": type(cause).__name__,
                **{key: value for key, value in details.items() if value is not None}
            }
        )
        log = logger.error if rejected else logger.warning
        log(
            f"{message} model={self.model}, latency={latency_ms}ms",
            extra={"attempt": attempt, "error_code": code, "latency_ms": latency_ms}
        )
        if rejected:
            return ModelRequestRejected(error)
        return ModelClientError(error)
