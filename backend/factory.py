"""
Composition root.

Builds the store, model client, agent loop and health monitor from config.
The CLI and the FastAPI app call ``build_services()``; nothing else
constructs its own backends.
"""
import logging
from dataclasses import dataclass

from config import STORE_BACKEND
from services.agent_loop import AgentLoop
from services.conversation_store import ConversationStore, InMemoryConversationStore
from services.health_monitor import HealthMonitor
from services.llm_client import GroqModelClient, ModelClient
from services.supabase_store import SupabaseConversationStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: ConversationStore
    model_client: ModelClient
    agent: AgentLoop
    health_monitor: HealthMonitor

    def close(self) -> None:
        self.model_client.close()
        self.store.close()


def build_store(backend: str = STORE_BACKEND) -> ConversationStore:
    if backend == "memory":
        logger.warning("Using in-memory conversation store; history is lost on exit")
        return InMemoryConversationStore()
    if backend == "supabase":
        return SupabaseConversationStore()
    raise ValueError(f"Unknown STORE_BACKEND: {backend!r}")


def build_services(backend: str = STORE_BACKEND) -> Services:
    store = build_store(backend)
    model_client = GroqModelClient()
    services = Services(
        store=store,
        model_client=model_client,
        agent=AgentLoop(store, model_client),
        health_monitor=HealthMonitor(store, model_client)
    )
    logger.info(f"Services initialized: store={type(store).__name__}, model={model_client.model}")
    return services
