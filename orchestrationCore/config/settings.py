"""Environment-bound configuration objects.

This module provides Pydantic BaseSettings-based configuration loading from .env files.
All settings classes automatically load from environment variables; every field can
also be passed by name when constructing a settings group directly (tests do this).

Example:
    from orchestrationCore.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    max_retries = settings.recovery.max_retries
    timeout = settings.dispatch.step_timeout
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


_COMMON_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


class ModelRoutingSettings(BaseSettings):
    """Model identifiers and credentials for the built-in LLM workers.

    Two slots are used:
    - chat: planner and tutor workers (MODEL_CHAT, MODEL_CHAT_ID)
    - code: coder worker (MODEL_CODE, MODEL_CODE_ID)

    Each slot has three fields: id, api_key, base_url.
    """

    chat: str = Field(
        default="chat-mid",
        validation_alias=AliasChoices("MODEL_CHAT", "MODEL_CHAT_ID", "chat"),
    )
    chat_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CHAT_API_KEY", "chat_api_key"),
    )
    chat_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CHAT_URL", "MODEL_CHAT_BASE_URL", "chat_base_url"),
    )

    code: str = Field(
        default="code-pro",
        validation_alias=AliasChoices("MODEL_CODE", "MODEL_CODE_ID", "code"),
    )
    code_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CODE_API_KEY", "code_api_key"),
    )
    code_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CODE_URL", "MODEL_CODE_BASE_URL", "code_base_url"),
    )

    temperature: float = Field(default=0.2, ge=0.0, le=2.0, alias="MODEL_TEMPERATURE")

    model_config = _COMMON_CONFIG


class DispatchSettings(BaseSettings):
    """Defaults applied to agent types registered without a descriptor.

    - step_timeout: Hard deadline per capability call, in seconds (default: 60)
    - max_concurrency: Admission limit per agent type (default: 4)
    - agents_config / intents_config: Override paths for the YAML files
    """

    step_timeout: float = Field(default=60.0, gt=0, alias="ORCH_STEP_TIMEOUT")
    max_concurrency: int = Field(default=4, ge=1, le=64, alias="ORCH_MAX_CONCURRENCY")
    agents_config: Optional[str] = Field(default=None, alias="ORCH_AGENTS_CONFIG")
    intents_config: Optional[str] = Field(default=None, alias="ORCH_INTENTS_CONFIG")

    model_config = _COMMON_CONFIG


class RecoverySettings(BaseSettings):
    """Failure Coordinator policy.

    - max_retries: Same-worker retries for transient errors (default: 2)
    - backoff_base: First retry delay in seconds (default: 1.0)
    - backoff_factor: Multiplier applied per further retry (default: 2.0)
    """

    max_retries: int = Field(default=2, ge=0, le=10, alias="ORCH_MAX_RETRIES")
    backoff_base: float = Field(default=1.0, ge=0.0, alias="ORCH_BACKOFF_BASE")
    backoff_factor: float = Field(default=2.0, ge=1.0, alias="ORCH_BACKOFF_FACTOR")

    model_config = _COMMON_CONFIG


class ValidationSettings(BaseSettings):
    """Acceptance checks applied by the Validator."""

    required_architecture_categories: List[str] = Field(
        default_factory=lambda: ["frontend", "backend"],
        alias="ORCH_REQUIRED_ARCHITECTURE_CATEGORIES",
    )

    model_config = _COMMON_CONFIG


class ObservabilitySettings(BaseSettings):
    """Tracing and logging configuration.

    Controls observability features:
    - LangSmith tracing for the LLM-backed workers (LANGCHAIN_TRACING_V2, LANGCHAIN_PROJECT, etc.)
    - Logging settings (LOG_LEVEL, LOG_DIR, LOG_DETAIL_MAX_LENGTH)
    """

    langsmith_project: Optional[str] = Field(default=None, alias="LANGCHAIN_PROJECT")
    langsmith_api_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("LANGCHAIN_API_KEY", "LANGSMITH_API_KEY", "langsmith_api_key")
    )
    tracing_enabled: bool = Field(default=False, alias="LANGCHAIN_TRACING_V2")

    # Logging settings
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="logs", alias="LOG_DIR")
    log_detail_max_length: int = Field(default=500, ge=100, le=5000, alias="LOG_DETAIL_MAX_LENGTH")

    model_config = _COMMON_CONFIG


class Settings(BaseSettings):
    """Root application settings loaded from .env file.

    Hierarchical structure containing five nested settings groups:
    - models: Model routing and API credentials (ModelRoutingSettings)
    - dispatch: Step deadlines and admission limits (DispatchSettings)
    - recovery: Retry / reassignment policy (RecoverySettings)
    - validation: Output acceptance checks (ValidationSettings)
    - observability: Tracing and logging (ObservabilitySettings)

    Use get_settings() to obtain a cached singleton instance.
    """

    environment: str = Field(default="dev", alias="APP_ENV")
    models: ModelRoutingSettings = Field(default_factory=ModelRoutingSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        validate_assignment=True,
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Uses LRU cache to ensure only one Settings object is created per process.
    All configuration is automatically loaded from .env file.

    Returns:
        Settings: Cached application settings instance
    """
    return Settings()


__all__ = [
    "ModelRoutingSettings",
    "DispatchSettings",
    "RecoverySettings",
    "ValidationSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
