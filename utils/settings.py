"""Environment-driven application settings."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {value!r}") from exc


@dataclass
class Settings:
    """Server configuration.

    Attributes:
        database_dir: Directory that holds chat.db (DATABASE_DIR).
        database_reset: Wipe the database on startup (DATABASE_RESET).
        translation_provider: `mock` or `openai` (TRANSLATION_PROVIDER).
            Defaults to `openai` when OPENAI_API_KEY is set, else `mock`.
        openai_model: Model used by the OpenAI provider (OPENAI_MODEL).
        mock_translation_delay: Simulated latency in seconds for the mock
            provider (MOCK_TRANSLATION_DELAY).
        session_retention_seconds: Idle time before an active session is
            closed by the cleaner (SESSION_RETENTION_SECONDS).
        cleanup_interval_seconds: Seconds between cleaner runs
            (CLEANUP_INTERVAL_SECONDS).
        allowed_origins: CORS origins (ALLOWED_ORIGINS, comma separated).
        log_level: Root logging level (LOG_LEVEL).
    """

    database_dir: Optional[str] = None
    database_reset: bool = False
    translation_provider: str = "mock"
    openai_model: str = "gpt-4o-mini"
    mock_translation_delay: float = 0.0
    session_retention_seconds: float = 86_400
    cleanup_interval_seconds: float = 3_600
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        default_provider = "openai" if os.getenv("OPENAI_API_KEY") else "mock"
        origins = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            database_dir=os.getenv("DATABASE_DIR"),
            database_reset=_env_bool("DATABASE_RESET"),
            translation_provider=(os.getenv("TRANSLATION_PROVIDER") or default_provider).strip().lower(),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            mock_translation_delay=_env_float("MOCK_TRANSLATION_DELAY", 0.0),
            session_retention_seconds=_env_float("SESSION_RETENTION_SECONDS", 86_400),
            cleanup_interval_seconds=_env_float("CLEANUP_INTERVAL_SECONDS", 3_600),
            allowed_origins=origins or ["*"],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
