"""Error taxonomy for the conversational agent."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class AgentError(Exception):
    """Base class for every typed failure the agent surfaces."""

    kind = "agent_error"
    retryable = False


class InvalidTenant(AgentError, ValueError):
    """Tenant identifier is empty or malformed. Caller error, never retried."""

    kind = "invalid_tenant"


class DeadlineExceeded(AgentError):
    """The caller's timeout elapsed or the request was cancelled."""

    kind = "deadline_exceeded"
    retryable = True


class PersistenceError(AgentError):
    """The conversation store could not complete a read or write."""

    kind = "persistence_error"
    retryable = True


class HistoryUnavailable(AgentError):
    """History could not be fetched; no model call was made."""

    kind = "history_unavailable"
    retryable = True


@dataclass
class ModelError:
    """Structured error information from model operations."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class ModelClientError(AgentError):
    """Custom exception for model client errors with structured error information."""

    kind = "model_error"

    def __init__(self, error: ModelError):
        self.error = error
        super().__init__(error.message)


class ModelRequestRejected(ModelClientError):
    """
    Non-transient model failure (authentication, permissions, malformed request).

    Raised on the first occurrence; retrying the same request cannot succeed.
    """

    kind = "model_rejected"


class ModelUnavailable(ModelClientError):
    """Transient model failures persisted until the retry budget was spent."""

    kind = "model_unavailable"
    retryable = True

    def __init__(self, error: ModelError, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(error)
        self.attempts = attempts
        self.last_error = last_error


class PersistenceFailedAfterModelCall(AgentError):
    """
    The model answered but the exchange could not be stored.

    ``reply`` holds the generated text so the caller can still show it.
    """

    kind = "persistence_failed_after_model_call"

    def __init__(self, message: str, reply: str):
        super().__init__(message)
        self.reply = reply
