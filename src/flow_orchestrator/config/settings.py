"""Configuration and settings management using pydantic-settings."""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Orchestrator settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="FLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core service settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # Admission
    max_concurrent_executions: int = Field(
        default=5,
        description="Maximum number of executions holding status 'running'",
    )
    execution_timeout_s: float = Field(
        default=300.0,
        description="Default wait timeout for an execution in seconds",
    )

    # Retries
    retry_attempts: int = Field(
        default=3,
        description="Default max_tries (total attempts) per execution",
    )
    retry_delay_s: float = Field(
        default=5.0,
        description="Delay before a failed execution is re-queued",
    )

    # Registry
    retention_s: float = Field(
        default=60.0,
        description="How long a terminal execution stays in the active table",
    )
    max_history: int = Field(
        default=1000,
        description="Maximum number of execution summaries kept in history",
    )

    # Handlers
    http_timeout_s: float = Field(
        default=30.0,
        description="Default timeout for HTTP node requests",
    )

    @field_validator("max_concurrent_executions", "retry_attempts", "max_history")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate that limits are positive."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("execution_timeout_s", "http_timeout_s")
    @classmethod
    def validate_positive_timeout(cls, v: float) -> float:
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("retry_delay_s", "retention_s")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Validate that delays are not negative."""
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
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
