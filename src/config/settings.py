"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock mode swaps MongoDB for an in-memory store so the API runs locally
with no database.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "CoachBook Scheduling API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )
    admin_api_keys: str = Field(
        default="",
        description="Comma-separated API keys allowed to hard-delete sessions."
    )

    # Session store
    store_mock_mode: bool = Field(
        default=False,
        description="Use the in-memory session store instead of MongoDB. Enables local dev without DB."
    )
    mongodb_uri: str = Field(
        default="",
        description="MongoDB connection string. Required unless in mock mode."
    )
    mongodb_database: str = Field(
        default="coachbook",
        description="MongoDB database name"
    )
    mongodb_collection: str = Field(
        default="sessions",
        description="Collection holding session documents"
    )
    mongodb_timeout_ms: int = Field(
        default=5000,
        description="Server selection timeout. Store operations have no timeout of their own."
    )
    mongodb_change_streams: bool = Field(
        default=False,
        description="Watch the collection so live feeds see writes from other processes. Needs a replica set."
    )

    # Booking defaults
    default_session_title: str = Field(
        default="Training Session",
        description="Title given to sessions booked without one"
    )
    default_session_duration: int = Field(
        default=60,
        description="Length in minutes of sessions booked without one"
    )
    upcoming_limit: int = Field(
        default=5,
        description="How many sessions the upcoming list returns by default"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def admin_api_keys_list(self) -> list[str]:
        """Parse comma-separated admin API keys into a list."""
        return [key.strip() for key in self.admin_api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.api_keys_list:
            missing.append("API_KEYS")

        # MongoDB only required if not in mock mode
        if not self.store_mock_mode and not self.mongodb_uri:
            missing.append("MONGODB_URI")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    This is safe because settings don't change during runtime.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
