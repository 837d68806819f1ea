"""HTTP entry point for the multi-tenant conversational agent."""
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from config import PORT, REQUEST_TIMEOUT, LOG_LEVEL, LOG_FORMAT
from factory import Services, build_services
from logger import setup_logging
from models.api import ChatRequest, ChatResponse, ErrorBody, HealthResponse
from models.errors import (
    AgentError,
    InvalidTenant,
    HistoryUnavailable,
    ModelUnavailable,
    ModelRequestRejected,
)
from models.tenant import TenantContext
from services.agent_loop import AgentResult
from services.deadline import Deadline

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Tenant Agent",
    description="Multi-tenant conversational agent",
    version="1.0.0"
)

# Initialize services (will be done on startup)
services: Optional[Services] = None

# Messages shown to callers; never the underlying exception text
PUBLIC_MESSAGES = {
    "invalid_tenant": "The tenant identifier is invalid.",
    "history_unavailable": "Conversation history is temporarily unavailable. Please retry.",
    "model_unavailable": "The model is temporarily unavailable. Please retry shortly.",
    "model_rejected": "The model rejected the request.",
    "persistence_failed_after_model_call": "The reply could not be saved to history.",
    "deadline_exceeded": "The request timed out.",
}

STATUS_CODES = {
    HistoryUnavailable: 503,
    ModelUnavailable: 503,
    ModelRequestRejected: 502,
}


def public_error(error: AgentError) -> ErrorBody:
    return ErrorBody(
        kind=error.kind,
        message=PUBLIC_MESSAGES.get(error.kind, "The request failed."),
        retryable=error.retryable
    )


def to_response(result: AgentResult) -> ChatResponse:
    return ChatResponse(
        outcome=result.outcome.value,
        reply=result.text,
        success=result.success,
        persisted=result.persisted,
        warnings=result.warnings,
        error=public_error(result.error) if result.error is not None else None,
        latency_ms=result.latency_ms
    )


@app.on_event("startup")
def startup_event():
    """Initialize services on startup."""
    global services

    setup_logging(LOG_LEVEL, LOG_FORMAT)
    logger.info("Initializing agent services...")
    try:
        services = build_services()
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
def shutdown_event():
    """Release service connections on shutdown."""
    global services

    if services is not None:
        services.close()
        services = None
    logger.info("Agent services stopped")


@app.get("/")
async def root():
    """Liveness endpoint."""
    return {"status": "ok", "message": "Tenant Agent API"}


@app.get("/health", response_model=HealthResponse)
def health():
    """Per-component health check; 503 unless every component passes."""
    report = services.health_monitor.check_health()
    body = HealthResponse(status=report.status, components=report.components)
    return JSONResponse(status_code=200 if report.healthy else 503, content=body.model_dump())


@app.post("/chat", response_model=ChatResponse)
def chat(request: ChatRequest):
    """
    Run one conversational turn for a tenant.

    Refusals and replies that could not be persisted return 200 with the
    text; the latter carries the ``history_not_persisted`` warning.
    """
    try:
        tenant = TenantContext.parse(request.tenant_id)
    except InvalidTenant as e:
        raise HTTPException(status_code=400, detail=public_error(e).model_dump())

    if not request.message or not request.message.strip():
        raise HTTPException(status_code=400, detail="Message field is required and cannot be empty")

    result = services.agent.handle(tenant, request.message, deadline=Deadline(REQUEST_TIMEOUT))
    response = to_response(result)

    status_code = 200
    if result.error is not None:
        status_code = STATUS_CODES.get(type(result.error), 200)
    return JSONResponse(status_code=status_code, content=response.model_dump())


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Tenant Agent API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
