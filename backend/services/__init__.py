"""Services for the conversational agent."""
from .deadline import Deadline
from .retry_policy import RetryPolicy, RetryExhausted
from .conversation_store import ConversationStore, InMemoryConversationStore
from .supabase_store import SupabaseConversationStore
from .llm_client import ModelClient, GroqModelClient
from .prompt_builder import build_prompt, AssembledPrompt
from .agent_loop import AgentLoop, AgentResult, Outcome, Stage
from .health_monitor import HealthMonitor, HealthReport

__all__ = ['Deadline', 'RetryPolicy', 'RetryExhausted', 'ConversationStore', 'InMemoryConversationStore', 'SupabaseConversationStore', 'ModelClient', 'GroqModelClient', 'build_prompt', 'AssembledPrompt', 'AgentLoop', 'AgentResult', 'Outcome', 'Stage', 'HealthMonitor', 'HealthReport']
