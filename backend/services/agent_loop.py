"""
Agent loop: history → prompt → model → persistence → reply.

Each call to ``AgentLoop.handle`` walks the stages

    start → fetch_history → build_prompt → call_model → persist → respond

and ends in one of three outcomes: a reply, a refusal, or an error. Errors
from any stage are reported as typed ``AgentError`` instances on the result;
nothing is persisted unless the model produced an answer that should be
stored.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from config import (
    HISTORY_MAX_TURNS,
    HISTORY_TOKEN_BUDGET,
    MODEL_MAX_TOKENS,
    MODEL_TEMPERATURE,
    PERSIST_REFUSALS,
    SYSTEM_PROMPT,
)
from models.completion import FinishReason, ModelParameters, ModelRequest, ModelResponse
from models.conversation import ConversationWindow
from models.errors import (
    AgentError,
    HistoryUnavailable,
    ModelClientError,
    PersistenceError,
    PersistenceFailedAfterModelCall,
)
from models.tenant import TenantContext
from services.conversation_store import ConversationStore
from services.deadline import Deadline
from services.llm_client import ModelClient
from services.prompt_builder import AssembledPrompt, TokenCounter, build_prompt, count_tokens

logger = logging.getLogger(__name__)

# Warning flags attached to results
HISTORY_NOT_PERSISTED = "history_not_persisted"
RESPONSE_TRUNCATED = "response_truncated"
PROMPT_OVER_BUDGET = "prompt_over_budget"


class Stage(str, Enum):
    START = "start"
    FETCH_HISTORY = "fetch_history"
    BUILD_PROMPT = "build_prompt"
    CALL_MODEL = "call_model"
    PERSIST = "persist"
    RESPOND = "respond"


class Outcome(str, Enum):
    REPLIED = "replied"
    REFUSED = "refused"
    ERROR = "error"


@dataclass
class AgentResult:
    """What the agent loop returns for one request."""
    outcome: Outcome
    text: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[AgentError] = None
    failed_stage: Optional[Stage] = None
    finish_reason: Optional[FinishReason] = None
    persisted: bool = False
    latency_ms: int = 0

    @property
    def success(self) -> bool:
        """True when the request finished without an error, refusals included."""
        return self.error is None

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error is not None else None

    def raise_for_error(self) -> None:
        """Re-raise the typed error, if any."""
        if self.error is not None:
            raise self.error


class AgentLoop:
    """
    Orchestrates one conversational request for one tenant.

    The loop holds configuration only; all per-request data lives in local
    variables, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        store: ConversationStore,
        model_client: ModelClient,
        history_max_turns: int = HISTORY_MAX_TURNS,
        token_budget: int = HISTORY_TOKEN_BUDGET,
        persist_refusals: bool = PERSIST_REFUSALS,
        parameters: Optional[ModelParameters] = None,
        system_prompt: Optional[str] = SYSTEM_PROMPT,
        count: TokenCounter = count_tokens
    ):
        """
        Args:
            store: Conversation store backend
            model_client: Model backend
            history_max_turns: Number of recent turns fetched per request
            token_budget: Token budget for the assembled prompt
            persist_refusals: Store refusal text as an assistant turn
            parameters: Generation parameters
            system_prompt: Leading instruction, or None for none
            count: Token counter used for the budget
        """
        self.store = store
        self.model_client = model_client
        self.history_max_turns = history_max_turns
        self.token_budget = token_budget
        self.persist_refusals = persist_refusals
        self.parameters = parameters or ModelParameters(
            max_tokens=MODEL_MAX_TOKENS,
            temperature=MODEL_TEMPERATURE
        )
        self.system_prompt = system_prompt
        self.count = count

    def handle(
        self,
        tenant: TenantContext,
        message: str,
        deadline: Optional[Deadline] = None
    ) -> AgentResult:
        """
        Process one user message.

        Args:
            tenant: Validated tenant context
            message: The user's message
            deadline: Optional timeout/cancellation shared by every blocking step

        Returns:
            AgentResult

        Raises:
            ValueError: If the message is empty
        """
        if not message or not message.strip():
            raise ValueError("Message cannot be empty")

        start_time = time.time()
        log_extra = {"tenant_id": tenant.tenant_id}

        def finish(result: AgentResult) -> AgentResult:
            result.latency_ms = int((time.time() - start_time) * 1000)
            return result

        # FetchHistory
        try:
            turns = self.store.fetch_recent_turns(tenant, self.history_max_turns, deadline=deadline)
        except PersistenceError as e:
            logger.error(f"History unavailable: {e}", extra={**log_extra, "stage": Stage.FETCH_HISTORY.value})
            error = HistoryUnavailable("Conversation history is unavailable")
            error.__cause__ = e
            return finish(AgentResult(outcome=Outcome.ERROR, error=error, failed_stage=Stage.FETCH_HISTORY))
        window = ConversationWindow.from_turns(tenant.tenant_id, turns)

        # BuildPrompt
        prompt = self.assemble(window, message)
        warnings: List[str] = []
        if prompt.over_budget:
            warnings.append(PROMPT_OVER_BUDGET)
        logger.debug(
            f"Prompt assembled: {prompt.included_turns} turns kept, "
            f"{prompt.dropped_turns} dropped, {prompt.token_count} tokens",
            extra={**log_extra, "stage": Stage.BUILD_PROMPT.value}
        )

        # CallModel
        request = ModelRequest(tenant=tenant, messages=prompt.messages, parameters=self.parameters)
        try:
            response = self.model_client.complete(request, deadline=deadline)
        except ModelClientError as e:
            logger.error(
                f"Model call failed: {e.error.code}",
                extra={**log_extra, "stage": Stage.CALL_MODEL.value, "error_code": e.error.code}
            )
            return finish(AgentResult(outcome=Outcome.ERROR, error=e, failed_stage=Stage.CALL_MODEL, warnings=warnings))

        if response.finish_reason is FinishReason.REFUSED:
            return finish(self._refused(tenant, message, response, warnings, deadline))

        if response.finish_reason is FinishReason.TRUNCATED:
            warnings.append(RESPONSE_TRUNCATED)

        # Persist
        error = self._persist(tenant, message, response.text, deadline)
        if error is not None:
            warnings.append(HISTORY_NOT_PERSISTED)
            return finish(AgentResult(
                outcome=Outcome.ERROR,
                text=response.text,
                warnings=warnings,
                error=error,
                failed_stage=Stage.PERSIST,
                finish_reason=response.finish_reason
            ))

        # Respond
        logger.info("Request completed", extra={**log_extra, "stage": Stage.RESPOND.value})
        return finish(AgentResult(
            outcome=Outcome.REPLIED,
            text=response.text,
            warnings=warnings,
            finish_reason=response.finish_reason,
            persisted=True
        ))

    def assemble(self, window: ConversationWindow, message: str) -> AssembledPrompt:
        """BuildPrompt stage with this loop's budget and system prompt."""
        return build_prompt(
            window,
            message,
            token_budget=self.token_budget,
            system_prompt=self.system_prompt,
            count=self.count
        )

    def _refused(
        self,
        tenant: TenantContext,
        message: str,
        response: ModelResponse,
        warnings: List[str],
        deadline: Optional[Deadline]
    ) -> AgentResult:
        logger.info(
            "Model refused the request",
            extra={"tenant_id": tenant.tenant_id, "stage": Stage.CALL_MODEL.value}
        )
        result = AgentResult(
            outcome=Outcome.REFUSED,
            text=response.text,
            warnings=warnings,
            finish_reason=response.finish_reason
        )
        if not self.persist_refusals:
            return result

        error = self._persist(tenant, message, response.text, deadline)
        if error is None:
            result.persisted = True
        else:
            result.warnings.append(HISTORY_NOT_PERSISTED)
            result.error = error
            result.failed_stage = Stage.PERSIST
        return result

    def _persist(
        self,
        tenant: TenantContext,
        message: str,
        reply: str,
        deadline: Optional[Deadline]
    ) -> Optional[PersistenceFailedAfterModelCall]:
        try:
            self.store.append_exchange(tenant, message, reply, deadline=deadline)
        except PersistenceError as e:
            logger.error(
                f"Reply generated but not persisted: {e}",
                extra={"tenant_id": tenant.tenant_id, "stage": Stage.PERSIST.value}
            )
            error = PersistenceFailedAfterModelCall("Reply was generated but history was not updated", reply=reply)
            error.__cause__ = e
            return error
        return None
