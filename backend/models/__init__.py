"""Data models for the conversational agent."""
from .errors import (
    AgentError,
    InvalidTenant,
    DeadlineExceeded,
    PersistenceError,
    HistoryUnavailable,
    ModelError,
    ModelClientError,
    ModelRequestRejected,
    ModelUnavailable,
    PersistenceFailedAfterModelCall,
)
from .tenant import TenantContext
from .conversation import Role, Turn, ConversationWindow
from .completion import FinishReason, PromptMessage, ModelParameters, ModelRequest, ModelResponse

__all__ = [
    "AgentError",
    "InvalidTenant",
    "DeadlineExceeded",
    "PersistenceError",
    "HistoryUnavailable",
    "ModelError",
    "ModelClientError",
    "ModelRequestRejected",
    "ModelUnavailable",
    "PersistenceFailedAfterModelCall",
    "TenantContext",
    "Role",
    "Turn",
    "ConversationWindow",
    "FinishReason",
    "PromptMessage",
    "ModelParameters",
    "ModelRequest",
    "ModelResponse",
]
