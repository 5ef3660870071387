"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import is_production, load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_bool_env(name: str, default: bool = False) -> bool:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RateLimitSettings:
    """
    Fixed-window limiter settings for one limiter instance.
    """

    max_requests: int
    window_seconds: float
    max_buckets: int


@dataclass(frozen=True)
class InsightsSettings:
    """
    Runtime settings for the insights pipeline.
    """

    max_range_days: int = 366
    model_timeout_seconds: float = 20.0
    max_daily_rows: int = 1500
    max_payload_bytes: int = 14000


@dataclass(frozen=True)
class LLMSettings:
    """
    Generative-text service settings.
    """

    adapter: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    max_tokens: int = 800
    temperature: float = 0.4


@dataclass(frozen=True)
class SecuritySettings:
    """
    Shared-secret API authentication and error-detail exposure.
    """

    api_key: str | None = None
    expose_error_details: bool = True


@dataclass(frozen=True)
class MetadataSettings:
    """
    Entity listing cache settings.
    """

    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 64


@dataclass(frozen=True)
class DatabaseSettings:
    """
    Connection-pool settings for the telemetry warehouse engine.
    """

    echo: bool = False
    pool_recycle: int = 1800
    pool_size: int = 10
    max_overflow: int = 10
    pool_timeout: int = 30


@lru_cache(maxsize=1)
def get_insights_settings() -> InsightsSettings:
    """
    Return cached insights pipeline settings from environment variables.
    """

    return InsightsSettings(
        max_range_days=max(1, _get_int_env("INSIGHTS_MAX_RANGE_DAYS", 366)),
        model_timeout_seconds=max(1.0, _get_float_env("INSIGHTS_MODEL_TIMEOUT_SECONDS", 20.0)),
        max_daily_rows=max(1, _get_int_env("INSIGHTS_MAX_DAILY_ROWS", 1500)),
        max_payload_bytes=max(1024, _get_int_env("INSIGHTS_MAX_PAYLOAD_BYTES", 14000)),
    )


@lru_cache(maxsize=1)
def get_insights_rate_limit_settings() -> RateLimitSettings:
    """
    Return the stricter insights-endpoint limiter settings.
    """

    return RateLimitSettings(
        max_requests=max(1, _get_int_env("INSIGHTS_RATE_LIMIT_PER_MIN", 10)),
        window_seconds=max(1.0, _get_float_env("INSIGHTS_RATE_LIMIT_WINDOW_SECONDS", 60.0)),
        max_buckets=max(1, _get_int_env("INSIGHTS_RATE_LIMIT_MAX_BUCKETS", 500)),
    )


@lru_cache(maxsize=1)
def get_api_rate_limit_settings() -> RateLimitSettings:
    """
    Return the coarse whole-API limiter settings.
    """

    return RateLimitSettings(
        max_requests=max(1, _get_int_env("RATE_LIMIT_MAX", 200)),
        window_seconds=max(1.0, _get_float_env("RATE_LIMIT_WINDOW_SECONDS", 900.0)),
        max_buckets=max(1, _get_int_env("RATE_LIMIT_MAX_BUCKETS", 1000)),
    )


@lru_cache(maxsize=1)
def get_llm_settings() -> LLMSettings:
    """
    Return generative-text service settings from environment variables.
    """

    return LLMSettings(
        adapter=_get_str_env("LLM_ADAPTER", "openai").lower(),
        model=_get_str_env("LLM_MODEL", "gpt-4o-mini"),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
        max_tokens=max(64, _get_int_env("LLM_MAX_TOKENS", 800)),
        temperature=min(2.0, max(0.0, _get_float_env("LLM_TEMPERATURE", 0.4))),
    )


@lru_cache(maxsize=1)
def get_security_settings() -> SecuritySettings:
    """
    Return API authentication settings.

    ``expose_error_details`` is false whenever ENVIRONMENT is production.
    """

    _load_env_once()
    return SecuritySettings(
        api_key=_get_optional_str_env("API_KEY"),
        expose_error_details=not is_production(),
    )


@lru_cache(maxsize=1)
def get_metadata_settings() -> MetadataSettings:
    """
    Return entity-listing cache settings.
    """

    return MetadataSettings(
        cache_ttl_seconds=max(1.0, _get_float_env("META_CACHE_TTL_SECONDS", 300.0)),
        cache_max_entries=max(1, _get_int_env("META_CACHE_MAX_ENTRIES", 64)),
    )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings(
        echo=_get_bool_env("SQL_ECHO"),
        pool_recycle=max(-1, _get_int_env("DB_POOL_RECYCLE", 1800)),
        pool_size=max(1, _get_int_env("DB_POOL_SIZE", 10)),
        max_overflow=max(0, _get_int_env("DB_MAX_OVERFLOW", 10)),
        pool_timeout=max(1, _get_int_env("DB_POOL_TIMEOUT", 30)),
    )


def clear_settings_cache() -> None:
    """
    Drop every cached settings object so the next read sees the current env.
    """

    for getter in (
        get_insights_settings,
        get_insights_rate_limit_settings,
        get_api_rate_limit_settings,
        get_llm_settings,
        get_security_settings,
        get_metadata_settings,
        get_database_settings,
    ):
        getter.cache_clear()
