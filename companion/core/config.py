"""
Configuration management via environment variables.

This module loads configuration from a .env file using python-dotenv.
All configuration values are accessed through the Settings class.

API keys are optional at load time; the LLM client refuses to start
without GOOGLE_API_KEY so that a missing key fails closed at the point
where it matters.
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load .env file from project root
# This must happen before accessing os.environ
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    frozen=True makes the dataclass immutable, preventing accidental
    modification of settings at runtime.

    Attributes:
        app_name: Application identifier for logging
        app_env: Environment name (development, staging, production)
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        database_url: SQLAlchemy connection string
        google_api_key: API key for Google Gemini (primary backend)
        groq_api_key: API key for Groq (fallback for plain-text prompts)
        llm_model: Gemini model used for every call
        llm_model_fallback: Groq model used when Gemini fails on text prompts
        llm_temperature: Sampling temperature for conversation turns
        llm_max_tokens: Maximum reply length
        llm_timeout_seconds: Bound applied to every backend request
        rate_limit_retry_seconds: Retry hint returned when the backend throttles
        history_window: Number of recent messages sent with each turn
        summary_every_n_messages: Summarization / extraction cadence
        tokens_per_credit: Token count covered by one credit
        title_max_length: Maximum generated title length
        max_message_length: Maximum accepted user message length
        background_tasks_inline: Run background jobs synchronously
        background_workers: Thread pool size for background jobs
    """
    # Application settings
    app_name: str
    app_env: str
    log_level: str

    # Database settings
    database_url: str

    # LLM settings
    google_api_key: str
    groq_api_key: str
    llm_model: str
    llm_model_fallback: str
    llm_temperature: float
    llm_max_tokens: int
    llm_timeout_seconds: int
    rate_limit_retry_seconds: int

    # Conversation settings
    history_window: int
    summary_every_n_messages: int
    tokens_per_credit: int
    title_max_length: int
    max_message_length: int

    # Background work
    background_tasks_inline: bool
    background_workers: int

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env.lower() == "development"

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


def _get_env(key: str, default: Optional[str] = None) -> str:
    """
    Get environment variable with optional default.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value

    Raises:
        ValueError: If required variable is not set and no default provided
    """
    value = os.environ.get(key, default)
    if value is None:
        raise ValueError(
            f"Required environment variable '{key}' is not set. "
            f"Please check your .env file."
        )
    return value


def _get_bool(key: str, default: str) -> bool:
    return _get_env(key, default).strip().lower() in ("1", "true", "yes")


def _normalize_database_url(database_url: str) -> str:
    """Ensure SQLAlchemy gets a dialect name it understands."""
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are read once; call get_settings.cache_clear() after changing
    the environment (tests do this).

    Returns:
        Settings instance with all configuration values
    """
    database_url = _normalize_database_url(
        _get_env("DATABASE_URL", "sqlite:///./companion.db")
    )

    return Settings(
        # Application
        app_name=_get_env("APP_NAME", "CompanionChat"),
        app_env=_get_env("APP_ENV", "development"),
        log_level=_get_env("LOG_LEVEL", "INFO"),

        # Database
        database_url=database_url,

        # LLM
        google_api_key=_get_env("GOOGLE_API_KEY", ""),
        groq_api_key=_get_env("GROQ_API_KEY", ""),
        llm_model=_get_env("LLM_MODEL", "gemini-1.5-flash"),
        llm_model_fallback=_get_env("LLM_MODEL_FALLBACK", "llama-3.1-8b-instant"),
        llm_temperature=float(_get_env("LLM_TEMPERATURE", "0.9")),
        llm_max_tokens=int(_get_env("LLM_MAX_TOKENS", "2048")),
        llm_timeout_seconds=int(_get_env("LLM_TIMEOUT_SECONDS", "30")),
        rate_limit_retry_seconds=int(_get_env("RATE_LIMIT_RETRY_SECONDS", "60")),

        # Conversation
        history_window=int(_get_env("HISTORY_WINDOW", "25")),
        summary_every_n_messages=int(_get_env("SUMMARY_EVERY_N_MESSAGES", "12")),
        tokens_per_credit=int(_get_env("TOKENS_PER_CREDIT", "1000")),
        title_max_length=int(_get_env("TITLE_MAX_LENGTH", "80")),
        max_message_length=int(_get_env("MAX_MESSAGE_LENGTH", "4000")),

        # Background work
        background_tasks_inline=_get_bool("BACKGROUND_TASKS_INLINE", "false"),
        background_workers=int(_get_env("BACKGROUND_WORKERS", "4")),
    )
