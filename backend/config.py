"""Configuration management for the multi-tenant conversational agent."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Tenant Configuration
TENANT_ID = os.getenv("TENANT_ID")
TENANT_ID_PATTERN = os.getenv("TENANT_ID_PATTERN", r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")

# Conversation Store Configuration
STORE_BACKEND = os.getenv("STORE_BACKEND", "supabase")  # "supabase" or "memory"
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_TIMEOUT = float(os.getenv("SUPABASE_TIMEOUT", "10"))

# Model Configuration
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
MODEL_NAME = os.getenv("MODEL_NAME", "llama-3.3-70b-versatile")
MODEL_BASE_URL = os.getenv("MODEL_BASE_URL") or None
MODEL_TIMEOUT = float(os.getenv("MODEL_TIMEOUT", "30"))
MODEL_MAX_TOKENS = int(os.getenv("MODEL_MAX_TOKENS", "500"))
MODEL_TEMPERATURE = float(os.getenv("MODEL_TEMPERATURE", "0.7"))

# Retry Configuration (model client only)
RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "4"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "0.5"))  # seconds
RETRY_MULTIPLIER = float(os.getenv("RETRY_MULTIPLIER", "2.0"))
RETRY_MAX_DELAY = float(os.getenv("RETRY_MAX_DELAY", "8.0"))  # seconds
RETRY_JITTER = float(os.getenv("RETRY_JITTER", "0.2"))  # fraction of the delay

# History Configuration
HISTORY_MAX_TURNS = int(os.getenv("HISTORY_MAX_TURNS", "20"))
HISTORY_TOKEN_BUDGET = int(os.getenv("HISTORY_TOKEN_BUDGET", "3000"))  # tokens
PERSIST_REFUSALS = _env_bool("PERSIST_REFUSALS", False)

SYSTEM_PROMPT = os.getenv(
    "SYSTEM_PROMPT",
    "You are a helpful assistant. Answer concisely and use the earlier "
    "conversation when it is relevant."
)

# Request Configuration
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60"))  # seconds
HEALTH_CHECK_TIMEOUT = float(os.getenv("HEALTH_CHECK_TIMEOUT", "5"))  # seconds

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
