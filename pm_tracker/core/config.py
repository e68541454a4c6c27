"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM provider configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    api_key: str = Field(default="", description="Anthropic API key")
    base_url: str = Field(
        default="https://api.anthropic.com",
        description="Base URL of the Messages API",
    )
    api_version: str = Field(default="2023-06-01", description="anthropic-version header")
    model: str = Field(default="claude-sonnet-4-5", description="Model used for all AI endpoints")
    max_tokens: int = Field(default=8192, description="Max tokens per response")
    temperature: float = Field(default=0.4, description="Sampling temperature")
    timeout: int = Field(default=120, description="Request timeout in seconds")


class StoryGenerationSettings(BaseSettings):
    """Bounds enforced on generated user stories."""

    model_config = SettingsConfigDict(env_prefix="STORY_GENERATION_")

    min_stories: int = Field(default=3, description="Minimum stories per generation")
    max_stories: int = Field(default=7, description="Maximum stories per generation")


class SecuritySettings(BaseSettings):
    """Security configuration."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="CORS allowed origins",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="pm-tracker", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=True, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Sub-settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    story_generation: StoryGenerationSettings = Field(default_factory=StoryGenerationSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()
