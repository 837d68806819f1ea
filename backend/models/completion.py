"""Model request and response data models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

from models.tenant import TenantContext


class FinishReason(str, Enum):
    """Why the model stopped generating."""
    COMPLETE = "complete"
    TRUNCATED = "truncated"
    REFUSED = "refused"


@dataclass(frozen=True)
class PromptMessage:
    """One role-tagged message sent to the model (system, user or assistant)."""
    role: str
    content: str

    def as_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ModelParameters:
    """Generation parameters."""
    max_tokens: int = 500
    temperature: float = 0.7


@dataclass(frozen=True)
class ModelRequest:
    """Request for a completion on behalf of one tenant."""
    tenant: TenantContext
    messages: Tuple[PromptMessage, ...]
    parameters: ModelParameters = field(default_factory=ModelParameters)


@dataclass
class ModelResponse:
    """Response from model generation."""
    text: str
    finish_reason: FinishReason
    latency_ms: int
    tokens_input: int = 0
    tokens_output: int = 0
    model_used: str = ""
    attempts: int = 1
