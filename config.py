"""
Centralized configuration for EvalArena.

Loads environment variables from .env and provides validated paths and settings.
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def get_path_var(var_name: str, default: str | None = None, required: bool = True) -> Path | None:
    """Retrieve a path from environment variables, resolving to absolute."""
    value = os.getenv(var_name, default)
    if not value:
        if required:
            print(f"Error: Missing required environment variable '{var_name}' in .env file.")
            sys.exit(1)
        return None
    return Path(value).expanduser().resolve()


def _env_int(var_name: str, default: int) -> int:
    value = os.getenv(var_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable '{var_name}' must be an integer, got '{value}'")


def _env_float(var_name: str, default: float) -> float:
    value = os.getenv(var_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable '{var_name}' must be a number, got '{value}'")


# -- Paths -------------------------------------------------------------------


STATE_DIR = Path(os.getenv("EVALARENA_STATE_DIR", str(Path.home() / ".evalarena")))
LOG_DIR = STATE_DIR / "logs"
STORE_PATH = STATE_DIR / "store.json"
REPORT_DIR = Path(os.getenv("EVALARENA_REPORT_DIR", "./reports"))
MODEL_CATALOG_PATH = get_path_var("EVALARENA_MODEL_CATALOG", required=False)

# -- Provider credentials ----------------------------------------------------

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")

# -- Scoring -----------------------------------------------------------------

JUDGE_MODEL = os.getenv("EVALARENA_JUDGE_MODEL", "gpt-4o")
EMBEDDING_PROVIDER = os.getenv("EVALARENA_EMBEDDING_PROVIDER", "openai")  # openai / ollama
EMBEDDING_MODEL = os.getenv("EVALARENA_EMBEDDING_MODEL", "text-embedding-3-small")
SCORING_MAX_RETRIES = _env_int("EVALARENA_SCORING_MAX_RETRIES", 3)

# -- Settings -----------------------------------------------------------------

REQUEST_TIMEOUT_SECONDS = _env_float("EVALARENA_REQUEST_TIMEOUT", 120.0)
API_HOST = os.getenv("EVALARENA_HOST", "127.0.0.1")
API_PORT = _env_int("EVALARENA_PORT", 8000)
API_URL = os.getenv("EVALARENA_API_URL", f"http://{API_HOST}:{API_PORT}")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")


def validate_config() -> None:
    """Validate that critical paths exist or can be created."""
    for path_var in [STATE_DIR, LOG_DIR]:
        if not path_var.exists():
            try:
                path_var.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                print(f"Warning: Could not create {path_var}: {e}")
