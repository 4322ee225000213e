"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="multisig-triage", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)
    bootstrap_address: str = Field(
        default="127.0.0.1:30001",
        description="Bootstrap node handed to the peer transport layer"
    )

    # ========== Storage ==========
    storage_url: str = Field(
        default="sqlite+aiosqlite:///./data/triage.db",
        description="Ordered key-value storage URL (async SQLAlchemy URL or memory://)"
    )

    # ========== Re-triage ==========
    retriage_interval_seconds: float = Field(
        default=60,
        description="Seconds between re-triage ticks (0 disables the scheduler)",
        ge=0
    )
    retriage_threshold: float = Field(
        default=0.1,
        description="Minimum urgency change that is persisted on re-triage",
        ge=0.0,
        le=1.0
    )
    search_default_limit: int = Field(
        default=50,
        description="Default number of tickets returned by search",
        ge=1,
        le=1000
    )

    # ========== LLM Scoring Backend ==========
    llm_enabled: bool = Field(
        default=False,
        description="Ask a language model for a bounded urgency adjustment"
    )
    mock_llm: bool = Field(
        default=False,
        description="Use mock LLM responses for testing (no API calls)"
    )
    llm_base_url: str = Field(
        default="http://localhost:8080/v1",
        description="OpenAI-compatible endpoint of the local model server"
    )
    llm_api_key: Optional[str] = Field(
        default=None,
        description="API key for the model server, if it requires one"
    )
    llm_model: str = Field(
        default="llama-2-7b-chat",
        description="Model used for urgency adjustment"
    )
    llm_temperature: float = Field(
        default=0.3,
        description="Sampling temperature for urgency adjustment",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=200,
        description="Max tokens for urgency adjustment responses",
        ge=1,
        le=8000
    )
    llm_failure_threshold: int = Field(
        default=5,
        description="Consecutive failures before the LLM circuit opens",
        ge=1
    )
    llm_recovery_seconds: float = Field(
        default=60.0,
        description="Seconds the LLM circuit stays open",
        ge=0
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class TicketStatus(str):
    """Ticket lifecycle statuses."""
    PENDING = "pending"


class ScoringDefaults:
    """Fixed parameters of urgency scoring."""
    REQUIRED_APPROVALS = 2
    MAX_TAGS = 5
    MAX_ADJUSTMENT = 0.2
    NEUTRAL_SCORE = 0.5


class IndexDimension(str):
    """Secondary index dimensions kept for every ticket."""
    TIME = "time"
    URGENCY = "urgency"
    STATUS = "status"
    TYPE = "type"
    DEADLINE = "deadline"
