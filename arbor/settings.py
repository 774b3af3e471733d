"""Application settings using pydantic-settings.

Loads configuration from environment variables with .env file support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,  # Allow both field name and alias
    )

    # Environment
    environment: Literal["development", "staging", "production", "testing"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Agents backend (streaming chat endpoint lives at {agents_base_url}/chat/stream)
    agents_base_url: str = Field(
        default="http://localhost:4111/api/agents",
        description="Base URL of the agents API",
        validation_alias=AliasChoices("agents_base_url", "agents_service_base_url"),
    )

    # Chat history API
    api_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the chat history API",
        validation_alias=AliasChoices("api_base_url", "arbor_api_url"),
    )
    api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token sent to both APIs (empty = no Authorization header)",
        validation_alias=AliasChoices("api_token", "arbor_token"),
    )
    request_timeout: float = Field(
        default=60.0,
        gt=0,
        description="HTTP timeout in seconds (per read for streaming requests)",
    )

    # Streaming
    done_echo_threshold: int | None = Field(
        default=100,
        ge=0,
        description=(
            "A chunk longer than this arriving together with the done marker is "
            "treated as a repeat of the whole answer and dropped (None disables)"
        ),
    )
    default_mode: Literal["main", "spin", "think"] = Field(
        default="main",
        description="Response style tag attached to AI messages",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
