"""
Crucible Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CrucibleSettings(BaseSettings):
    """
    Crucible configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="CRUCIBLE_",  # All Crucible env vars must start with CRUCIBLE_
    )

    # Scope defaults
    stage: str | None = Field(
        default=None,
        description="Default stage name, falls back to $USER (env: CRUCIBLE_STAGE)",
    )

    state_dir: Path = Field(
        default=Path(".crucible"),
        description="Directory for the file system state store (env: CRUCIBLE_STATE_DIR)",
    )

    adopt: bool = Field(
        default=False,
        description="Adopt pre-existing remote objects by default (env: CRUCIBLE_ADOPT)",
    )

    local: bool = Field(
        default=False,
        description="Run resources in local emulation mode (env: CRUCIBLE_LOCAL)",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: CRUCIBLE_LOG_LEVEL)",
    )

    # Cloudflare
    cloudflare_api_token: str | None = Field(
        default=None,
        description="Cloudflare API token (env: CRUCIBLE_CLOUDFLARE_API_TOKEN)",
    )

    cloudflare_account_id: str | None = Field(
        default=None,
        description="Cloudflare account ID (env: CRUCIBLE_CLOUDFLARE_ACCOUNT_ID)",
    )

    cloudflare_base_url: str = Field(
        default="https://api.cloudflare.com/client/v4",
        description="Cloudflare API base URL (env: CRUCIBLE_CLOUDFLARE_BASE_URL)",
    )

    # PlanetScale
    planetscale_api_token: str | None = Field(
        default=None,
        description="PlanetScale service token as 'id:token' (env: CRUCIBLE_PLANETSCALE_API_TOKEN)",
    )

    planetscale_organization: str | None = Field(
        default=None,
        description="Default PlanetScale organization (env: CRUCIBLE_PLANETSCALE_ORGANIZATION)",
    )

    planetscale_base_url: str = Field(
        default="https://api.planetscale.com/v1",
        description="PlanetScale API base URL (env: CRUCIBLE_PLANETSCALE_BASE_URL)",
    )

    # HTTP and polling
    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for provider API requests (env: CRUCIBLE_HTTP_TIMEOUT)",
    )

    poll_initial_delay: float = Field(
        default=1.0,
        description="First delay between polls in seconds (env: CRUCIBLE_POLL_INITIAL_DELAY)",
    )

    poll_max_delay: float = Field(
        default=10.0,
        description="Upper bound on the backoff delay in seconds (env: CRUCIBLE_POLL_MAX_DELAY)",
    )

    poll_timeout: float = Field(
        default=600.0,
        description="Deadline in seconds for a polling loop (env: CRUCIBLE_POLL_TIMEOUT)",
    )


# Global settings instance
_settings: CrucibleSettings | None = None


def get_settings() -> CrucibleSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        CrucibleSettings instance
    """
    global _settings
    if _settings is None:
        _settings = CrucibleSettings()
    return _settings


def reload_settings() -> CrucibleSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh CrucibleSettings instance
    """
    global _settings
    _settings = CrucibleSettings()
    return _settings
