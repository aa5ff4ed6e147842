"""Process configuration loaded once from the environment at startup."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

REQUIRED_VARS = (
    "INSTAGRAM_ACCESS_TOKEN",
    "VERIFY_TOKEN",
    "AI_API_KEY",
    "BOT_INSTAGRAM_ID",
)

DEFAULT_AI_API_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_AI_MODEL = "llama-3.1-8b-instant"
DEFAULT_INSTAGRAM_API_BASE = "https://graph.instagram.com/v18.0"
DEFAULT_AUDIT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_AUDIT_BACKUP_COUNT = 5


class MissingConfigError(Exception):
    """Raised when one or more required environment variables are absent."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            f"Missing required environment variables: {', '.join(missing)}"
        )


class Settings(BaseModel):
    """Immutable runtime configuration, passed explicitly to every component."""

    model_config = ConfigDict(frozen=True)

    instagram_access_token: str = Field(min_length=1)
    verify_token: str = Field(min_length=1)
    ai_api_key: str = Field(min_length=1)
    bot_account_id: str = Field(min_length=1)

    app_secret: str | None = None
    host: str = "0.0.0.0"
    port: int = Field(default=3000, gt=0, lt=65536)
    log_level: str = "INFO"

    ai_api_base_url: str = DEFAULT_AI_API_BASE_URL
    ai_model: str = DEFAULT_AI_MODEL
    # Generator + delivery timeouts together must stay under the
    # platform's reply deadline.
    generator_timeout: float = Field(default=15.0, gt=0)
    instagram_api_base: str = DEFAULT_INSTAGRAM_API_BASE
    delivery_timeout: float = Field(default=5.0, gt=0)

    pipeline_workers: int = Field(default=4, ge=1)
    event_queue_max_size: int = Field(default=1000, ge=0)
    audit_log_path: str | None = None
    audit_log_max_bytes: int = Field(default=DEFAULT_AUDIT_MAX_BYTES, gt=0)
    audit_log_backup_count: int = Field(default=DEFAULT_AUDIT_BACKUP_COUNT, ge=0)


def _number(env: Mapping[str, str], name: str, default: str, cast: type) -> object:
    raw = env.get(name) or default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from exc


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Raises MissingConfigError listing every required variable that is unset
    or empty, so an operator can fix them all in one pass.
    """
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED_VARS if not env.get(name)]
    if missing:
        raise MissingConfigError(missing)

    return Settings(
        instagram_access_token=env["INSTAGRAM_ACCESS_TOKEN"],
        verify_token=env["VERIFY_TOKEN"],
        ai_api_key=env["AI_API_KEY"],
        bot_account_id=env["BOT_INSTAGRAM_ID"],
        app_secret=env.get("APP_SECRET") or None,
        host=env.get("HOST") or "0.0.0.0",
        port=_number(env, "PORT", "3000", int),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        ai_api_base_url=env.get("AI_API_BASE_URL") or DEFAULT_AI_API_BASE_URL,
        ai_model=env.get("AI_MODEL") or DEFAULT_AI_MODEL,
        generator_timeout=_number(env, "GENERATOR_TIMEOUT_SECONDS", "15", float),
        instagram_api_base=env.get("INSTAGRAM_API_BASE") or DEFAULT_INSTAGRAM_API_BASE,
        delivery_timeout=_number(env, "DELIVERY_TIMEOUT_SECONDS", "5", float),
        pipeline_workers=_number(env, "PIPELINE_WORKERS", "4", int),
        event_queue_max_size=_number(env, "EVENT_QUEUE_MAX_SIZE", "1000", int),
        audit_log_path=env.get("AUDIT_LOG_PATH") or None,
        audit_log_max_bytes=_number(
            env, "AUDIT_LOG_MAX_BYTES", str(DEFAULT_AUDIT_MAX_BYTES), int,
        ),
        audit_log_backup_count=_number(
            env, "AUDIT_LOG_BACKUP_COUNT", str(DEFAULT_AUDIT_BACKUP_COUNT), int,
        ),
    )
