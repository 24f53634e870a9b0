"""
Runtime settings, read once from the environment.
API keys are picked up by the openai / anthropic SDK clients directly.
"""
import os

OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_VISION_MODEL = os.environ.get("OPENAI_VISION_MODEL", "gpt-4o")
CLASSIFIER_MODEL = os.environ.get("CLASSIFIER_MODEL", "claude-haiku-4-5-20251001")

# Every LLM call is bounded; a hang is treated the same as a failure.
LLM_TIMEOUT_SECONDS = float(os.environ.get("LLM_TIMEOUT_SECONDS", "20"))

SESSION_IDLE_SECONDS = int(os.environ.get("SESSION_IDLE_SECONDS", "1200"))  # 20 minutes
SESSION_SWEEP_INTERVAL_SECONDS = int(os.environ.get("SESSION_SWEEP_INTERVAL_SECONDS", "60"))
SESSION_HISTORY_LIMIT = 12

CONTENT_CACHE_TTL_SECONDS = int(os.environ.get("CONTENT_CACHE_TTL_SECONDS", "600"))

TURN_RATE_LIMIT = os.environ.get("TURN_RATE_LIMIT", "30/minute")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

# Audit trail is disabled unless a database is configured.
DATABASE_URL = os.environ.get("DATABASE_URL", "")

# Tracing exports to Langfuse when both keys are set, otherwise to the console.
LANGFUSE_HOST = os.environ.get("LANGFUSE_HOST", "http://localhost:3001")
LANGFUSE_PUBLIC_KEY = os.environ.get("LANGFUSE_PUBLIC_KEY", "")
LANGFUSE_SECRET_KEY = os.environ.get("LANGFUSE_SECRET_KEY", "")
SERVICE_NAME = os.environ.get("SERVICE_NAME", "capstutor")
