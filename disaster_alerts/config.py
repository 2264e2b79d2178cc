"""Configuration and environment variable handling.

This module centralises configuration for the disaster alert pipeline. It
loads settings from a ``.env`` file if present and exposes them via a
``Config`` dataclass. Create a ``.env`` file at the project root with the
values you want to override or set the corresponding environment variables
in your shell.

By default an event is verified when both its disaster score and the
independent hazard signal exceed 0.5, and a public alert goes out only for
verified events scoring above 0.7.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Config:
    """Simple configuration holder loaded from environment variables."""

    # Ollama model used for text classification.
    llm_model_name: str = "llama3.1:latest"
    # Base URL of the Ollama server. ``None`` lets the client use its default.
    ollama_base_url: str | None = None
    # Upper bound for a single classification call.
    llm_timeout_seconds: float = 30.0
    # SQLite file holding events and queues.
    database_path: str = "./disaster_alerts.db"
    # Retention for persisted events.
    event_ttl_days: int = 30
    # Window scanned when the author/text index is unavailable.
    dedup_fallback_window_hours: int = 24
    # Both the disaster score and the hazard signal must exceed this.
    verify_threshold: float = 0.5
    # Verified events scoring above this trigger an alert.
    alert_threshold: float = 0.7
    # Receive count at which a failing message is dead-lettered.
    max_receives: int = 3
    queue_batch_size: int = 10
    visibility_timeout_seconds: int = 30
    max_workers: int = 1
    # Public Malaysian weather API used as the corroboration source.
    hazard_api_base_url: str = "https://api.data.gov.my/weather"
    hazard_timeout_seconds: float = 10.0
    # Webhook receiving alert notifications. Alerts are skipped when unset.
    alerts_webhook_url: str | None = None
    alert_timeout_seconds: float = 10.0
    # Resolve free-text locations to coordinates with Nominatim.
    geocoding_enabled: bool = False
    default_country: str = "Malaysia"


def load_config(env_path: str = ".env") -> Config:
    """Load configuration values from environment variables and return a Config object.

    The function will attempt to read a ``.env`` file if it exists using the
    ``python-dotenv`` package. If no ``.env`` file is found, it falls back
    to reading variables from the current environment. Missing variables
    default to the values defined in :class:`Config`.

    Parameters
    ----------
    env_path: str
        Optional path to a ``.env`` file. Defaults to ``.env`` in the
        current working directory.

    Returns
    -------
    Config
        A configuration object with attributes populated from the
        environment.
    """
    if os.path.exists(env_path):
        load_dotenv(env_path)

    defaults = Config()
    return Config(
        llm_model_name=os.getenv("LLM_MODEL_NAME", defaults.llm_model_name),
        ollama_base_url=os.getenv("OLLAMA_BASE_URL") or None,
        llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", defaults.llm_timeout_seconds),
        database_path=os.getenv("DATABASE_PATH", defaults.database_path),
        event_ttl_days=_env_int("EVENT_TTL_DAYS", defaults.event_ttl_days),
        dedup_fallback_window_hours=_env_int(
            "DEDUP_FALLBACK_WINDOW_HOURS", defaults.dedup_fallback_window_hours
        ),
        verify_threshold=_env_float("VERIFY_THRESHOLD", defaults.verify_threshold),
        alert_threshold=_env_float("ALERT_THRESHOLD", defaults.alert_threshold),
        max_receives=_env_int("MAX_RECEIVES", defaults.max_receives),
        queue_batch_size=_env_int("QUEUE_BATCH_SIZE", defaults.queue_batch_size),
        visibility_timeout_seconds=_env_int(
            "VISIBILITY_TIMEOUT_SECONDS", defaults.visibility_timeout_seconds
        ),
        max_workers=_env_int("MAX_WORKERS", defaults.max_workers),
        hazard_api_base_url=os.getenv("HAZARD_API_BASE_URL", defaults.hazard_api_base_url),
        hazard_timeout_seconds=_env_float("HAZARD_TIMEOUT_SECONDS", defaults.hazard_timeout_seconds),
        alerts_webhook_url=os.getenv("ALERTS_WEBHOOK_URL") or None,
        alert_timeout_seconds=_env_float("ALERT_TIMEOUT_SECONDS", defaults.alert_timeout_seconds),
        geocoding_enabled=_env_bool("GEOCODING_ENABLED", defaults.geocoding_enabled),
        default_country=os.getenv("DEFAULT_COUNTRY", defaults.default_country),
    )


CONFIG: Config = load_config()
