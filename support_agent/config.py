"""Centralized configuration for the TechCorp support agent.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/techcorp-support/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))
_SSM_PREFIX = "/techcorp-support"


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 cannot reach
    SSM.  Errors are logged at DEBUG and never raised.
    """
    try:
        import boto3  # noqa: PLC0415 — lazy import, only needed on AWS

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"{_SSM_PREFIX}/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _optional_secret(name: str) -> str | None:
    """Return a secret from env-var or SSM, or ``None`` when unset."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value
    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = _optional_secret(name)
    if value:
        return value
    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store {_SSM_PREFIX}/{name} (AWS)."
    )


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
MAX_OUTPUT_TOKENS: int = int(os.getenv("MAX_OUTPUT_TOKENS", "1000"))
TEMPERATURE: float = float(os.getenv("TEMPERATURE", "0.7"))
LLM_MAX_RETRIES: int = int(os.getenv("LLM_MAX_RETRIES", "2"))

# Upper bound on model → tools → model cycles within one turn
MAX_TOOL_ROUNDTRIPS: int = int(os.getenv("MAX_TOOL_ROUNDTRIPS", "5"))

# ── Embeddings (optional: keyword search is used without them) ──────
OPENAI_API_KEY: str | None = _optional_secret("OPENAI_API_KEY")
EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
KNOWLEDGE_BASE_PATH: str | None = os.getenv("KNOWLEDGE_BASE_PATH")

# ── Rate limiting ───────────────────────────────────────────────────
RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_MS: int = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
RATE_LIMIT_SWEEP_SECONDS: float = float(os.getenv("RATE_LIMIT_SWEEP_SECONDS", "60"))

# ── Persistence ─────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./techcorp_support.db")

# ── Human handoff ───────────────────────────────────────────────────
HANDOFF_WEBHOOK_URL: str | None = os.getenv("HANDOFF_WEBHOOK_URL") or None
HANDOFF_WEBHOOK_TOKEN: str | None = _optional_secret("HANDOFF_WEBHOOK_TOKEN")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
