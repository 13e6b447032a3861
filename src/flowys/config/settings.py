"""Configuration and settings management using pydantic-settings."""
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="FLOWYS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core service settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")

    # Scheduler limits
    max_concurrency: int = Field(
        default=8,
        description="Maximum node tasks running at once within a single run",
    )
    run_timeout_s: float | None = Field(
        default=None,
        description="Abort a run after this many seconds (None disables)",
    )

    # Outbound HTTP
    http_timeout_s: float = Field(
        default=30,
        description="Default timeout for api node requests in seconds",
    )
    webhook_user_agent: str = Field(
        default="Flowys-Workflow/1.0",
        description="User-Agent header sent by webhook nodes",
    )

    # OpenAI settings
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com",
        description="OpenAI API base URL",
    )

    # Anthropic settings
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key",
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Anthropic API base URL",
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        description="Anthropic API version",
    )

    # AI node behaviour
    ai_default_max_tokens: int = Field(
        default=4096,
        description="max_tokens used when an ai node does not set maxTokens",
    )
    ai_schema_retries: int = Field(
        default=2,
        description="Corrective re-prompts when a response fails outputSchema",
    )
    ai_timeout_s: float = Field(
        default=60,
        description="Read timeout for LLM provider calls in seconds",
    )

    @field_validator("max_concurrency", "ai_default_max_tokens")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate that limits are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("ai_schema_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Validate that retries are not negative."""
        if v < 0:
            raise ValueError("ai_schema_retries must not be negative")
        return v


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
