"""Centralized configuration for the back-office AI assistant.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/admin-assistant/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/admin-assistant/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /admin-assistant/{name} (AWS)."
    )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
SUMMARY_MODEL_NAME: str = os.getenv("SUMMARY_MODEL_NAME", "claude-haiku-4-5")
LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.3"))
LLM_MAX_TOKENS: int = _int_env("LLM_MAX_TOKENS", 800)

# ── Back-office API (directory, availability, mutations) ────────────
BACKOFFICE_API_TOKEN: str = _require_env("BACKOFFICE_API_TOKEN")
BACKOFFICE_BASE_URL: str = os.getenv("BACKOFFICE_BASE_URL", "http://localhost:3000/api")

# ── Conversation ────────────────────────────────────────────────────
TIME_ZONE: str = os.getenv("ASSISTANT_TIME_ZONE", "Europe/Madrid")
DATABASE_PATH: str = os.getenv("ASSISTANT_DATABASE_PATH", ".data/assistant.db")
MAX_HISTORY_MESSAGES: int = _int_env("MAX_HISTORY_MESSAGES", 16)
SUMMARY_EVERY_MESSAGES: int = _int_env("SUMMARY_EVERY_MESSAGES", 8)
SUMMARY_MAX_MESSAGES: int = _int_env("SUMMARY_MAX_MESSAGES", 10)
SESSION_MESSAGE_CAP: int = _int_env("SESSION_MESSAGE_CAP", 80)
DAILY_MESSAGE_LIMIT: int = _int_env("DAILY_MESSAGE_LIMIT", 20)
BUSINESS_FACTS_LIMIT: int = _int_env("BUSINESS_FACTS_LIMIT", 10)

# ── Scheduling ──────────────────────────────────────────────────────
SLOT_SEARCH_DAYS: int = _int_env("SLOT_SEARCH_DAYS", 14)
ANNOUNCEMENTS_ENABLED: bool = os.getenv("ANNOUNCEMENTS_ENABLED", "true").lower() == "true"

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = _int_env("SERVER_PORT", 8000)
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
