"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file without clobbering variables already set in the environment
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Provider credential fields are named after the environment keys the
    console asks operators to set, so ``GITHUB_PAT`` maps to ``github_pat``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    # Console origins allowed outside development
    cors_origins: list[str] = Field(default_factory=list)

    # GitHub (required): personal access token or GitHub App
    github_pat: str = Field(default="")
    github_username: str = Field(default="")
    github_app_id: str = Field(default="")
    github_private_key: str = Field(default="")
    github_installation_id: str = Field(default="")
    github_owner_is_org: bool = False
    github_private_repos: bool = True

    # Vercel (required)
    vercel_token: str = Field(default="")
    vercel_team_id: str | None = None

    # MongoDB Atlas (optional)
    mongodb_api_key: str = Field(default="")
    mongodb_private_key: str = Field(default="")
    mongodb_org_id: str = Field(default="")
    mongodb_region: str = "US_EAST_1"
    mongodb_tier: str = "M10"
    mongodb_provider: Literal["AWS", "GCP", "AZURE"] = "AWS"

    # Clerk (optional)
    clerk_secret_key: str = Field(default="")

    # Google Cloud (optional)
    google_cloud_client_email: str = Field(default="")
    google_cloud_private_key: str = Field(default="")
    google_cloud_organization_id: str | None = None
    google_cloud_billing_account_id: str | None = None
    google_cloud_enable_apis: list[str] = Field(default_factory=list)

    # Cloudflare DNS (optional, used with custom domains)
    cloudflare_token: str = Field(default="")

    # Polling (seconds): interval / deadline per provider
    repository_poll_interval: float = 1.0
    repository_poll_deadline: float = 30.0
    hosting_poll_interval: float = 5.0
    hosting_poll_deadline: float = 600.0
    database_poll_interval: float = 30.0
    database_poll_deadline: float = 1800.0
    identity_poll_interval: float = 2.0
    identity_poll_deadline: float = 60.0
    cloud_poll_interval: float = 5.0
    cloud_poll_deadline: float = 300.0

    # HTTP clients
    provider_request_timeout: float = 30.0
    client_cache_max_entries: int = 32
    client_cache_idle_ttl: float = 900.0

    # Progress streaming
    stream_keepalive_seconds: float = 15.0
    # Events buffered per stream subscriber before the oldest are dropped
    progress_queue_size: int = 256

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str | None = None
    log_file_name: str = "provisioner.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
