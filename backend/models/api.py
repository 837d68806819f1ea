"""Request and response schemas for the HTTP surface."""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    tenant_id: str = Field(..., description="Tenant the conversation belongs to")
    message: str = Field(..., description="User message")


class ErrorBody(BaseModel):
    kind: str
    message: str
    retryable: bool = False


class ChatResponse(BaseModel):
    outcome: str
    reply: Optional[str] = None
    success: bool
    persisted: bool = False
    warnings: List[str] = Field(default_factory=list)
    error: Optional[ErrorBody] = None
    latency_ms: int = 0


class HealthResponse(BaseModel):
    status: str
    components: Dict[str, str]
