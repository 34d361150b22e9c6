"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from threadscribe.utils.errors import ConfigurationError

# Find the project root (where .env should be)
PROJECT_ROOT = Path(__file__).parent.parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

# Credentials that must be present before any job is accepted
REQUIRED_CREDENTIALS = {
    "slack_bot_token": "SLACK_BOT_TOKEN",
    "slack_signing_secret": "SLACK_SIGNING_SECRET",
    "store_token": "STORE_TOKEN",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Slack Configuration
    slack_bot_token: str | None = Field(default=None, description="Bot OAuth token (xoxb-)")
    slack_signing_secret: str | None = Field(
        default=None, description="Signing secret for request verification"
    )

    # Blob store (Redis) Configuration
    store_token: str | None = Field(default=None, description="Blob store password")
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)
    ledger_ttl: int | None = Field(
        default=None, description="Ledger record expiry in seconds (None = keep forever)"
    )
    event_dedup_ttl: int = Field(default=600, ge=1)

    # Extraction model Configuration
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    llm_model: str = Field(default="gpt-4o", description="Vision model identifier")
    extraction_max_tokens: int = Field(default=16000, ge=256)
    vision_image_target_size: int = Field(default=2048, ge=256)

    # Pipeline Settings
    max_images: int = Field(default=50, ge=1)
    slack_max_text_length: int = Field(
        default=38_000,
        ge=1000,
        description="Slack truncates at 40,000; keep a margin",
    )
    min_retry_length: int = Field(default=500, ge=1)
    output_strategy: Literal["truncate", "chunk"] = Field(default="truncate")
    extraction_concurrency: int = Field(default=1, ge=1, le=8)

    # Application Settings
    app_env: Literal["development", "staging", "production"] = Field(default="development")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_json: bool = Field(default=False)

    def credential_presence(self) -> dict[str, bool]:
        """Report which required credentials are set, keyed by env var name."""
        return {
            env_name: bool(getattr(self, field_name))
            for field_name, env_name in REQUIRED_CREDENTIALS.items()
        }

    def missing_credentials(self) -> list[str]:
        """List the env var names of absent required credentials."""
        return [name for name, present in self.credential_presence().items() if not present]

    def require_credentials(self) -> None:
        """Raise ConfigurationError unless every required credential is set."""
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                details={"missing": missing},
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
