"""Configuration management for the Serendipity connection service."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Text generation providers (at least one key needed at generation time)
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")

    # Environment
    SERENDIPITY_ENV: str = Field(default="dev", description="Environment: dev, staging, prod, test")

    # Connection discovery models
    CONNECTIONS_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Anthropic model for connection discovery"
    )
    OPENAI_CONNECTIONS_MODEL: str = Field(
        default="gpt-4o-mini", description="OpenAI model for connection discovery"
    )

    # Output token budgets per call site
    AUTO_CONNECT_MAX_TOKENS: int = Field(default=2048, description="Max output tokens per auto-connect cluster")
    BULK_CONNECT_MAX_TOKENS: int = Field(default=3072, description="Max output tokens per bulk cluster")
    SUGGEST_MAX_TOKENS: int = Field(default=2048, description="Max output tokens for streamed suggestions")

    # Per-cluster generation timeout; a timed-out cluster contributes nothing
    CLUSTER_CALL_TIMEOUT_SECONDS: float = Field(
        default=60.0, description="Timeout for a single cluster generation call"
    )

    # Fixed-window rate limits, per actor
    AUTO_CONNECT_RATE_LIMIT: int = Field(default=10, description="Auto-connect requests per window")
    BULK_CONNECT_RATE_LIMIT: int = Field(default=3, description="Bulk connect requests per window")
    SUGGEST_RATE_LIMIT: int = Field(default=10, description="Suggestion stream requests per window")
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=60, description="Rate limit window length")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
