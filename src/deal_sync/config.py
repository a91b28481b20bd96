"""
Configuration management for the HubSpot deal sync engine.

Loads settings from environment variables (and a project-root .env file)
with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


class Settings(BaseSettings):
    """Sync engine settings loaded from environment variables."""

    # HubSpot
    HUBSPOT_ACCESS_TOKEN: str = ''
    HUBSPOT_API_BASE: str = 'https://api.hubapi.com'
    HUBSPOT_PAGE_SIZE: int = Field(default=100, ge=1, le=100)
    HUBSPOT_MAX_PAGES: int = Field(default=50, ge=1)

    # Fan-out bounds
    REFERENCE_CHUNK_SIZE: int = Field(default=10, ge=1)
    ENGAGEMENT_CHUNK_SIZE: int = Field(default=10, ge=1)

    # Timeouts
    REQUEST_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    SYNC_TIMEOUT_SECONDS: float | None = Field(default=None, gt=0)

    # Persistence
    DATABASE_URL: str = ''

    # Logging
    LOG_LEVEL: str = 'INFO'
    LOG_JSON: bool = False

    def validate_required(self) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not self.HUBSPOT_ACCESS_TOKEN:
            missing.append('HUBSPOT_ACCESS_TOKEN')
        return missing


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
