import os

from dotenv import load_dotenv

load_dotenv()

# Language model (optional; unset key means rule-based parsing only)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5")
MODEL_MAX_TOKENS = int(os.getenv("MODEL_MAX_TOKENS", "1024"))
MODEL_TIMEOUT_SECONDS = float(os.getenv("MODEL_TIMEOUT_SECONDS", "10"))

DATABASE_PATH = os.getenv("TASKS_DATABASE_PATH", "tasks.db")

# Confirmation tokens for destructive commands
CONFIRMATION_TTL_SECONDS = int(os.getenv("CONFIRMATION_TTL_SECONDS", "600"))
CONFIRMATION_SWEEP_SECONDS = int(os.getenv("CONFIRMATION_SWEEP_SECONDS", "60"))

FREE_PLAN_LIMIT = int(os.getenv("FREE_PLAN_LIMIT", "5"))

CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def model_configured() -> bool:
    """True when an Anthropic key is present and not the .env placeholder."""
    return bool(ANTHROPIC_API_KEY) and ANTHROPIC_API_KEY != "your-api-key-here"
