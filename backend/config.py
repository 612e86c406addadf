"""
Configuration management using Pydantic settings.
Loads environment variables and provides type-safe configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    # Google OAuth Configuration
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/api/auth/google/callback"

    # Encryption Configuration (Fernet key, also signs the session cookie)
    ENCRYPTION_KEY: str = ""

    # Session Configuration
    SESSION_COOKIE_NAME: str = "inbox_session"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 30

    # Tinybird Configuration
    TINYBIRD_BASE_URL: str = "https://api.tinybird.co"
    TINYBIRD_TOKEN: str = ""
    TINYBIRD_EMAIL_DATASOURCE: str = "email"
    TINYBIRD_LAST_EMAIL_PIPE: str = "get_last_email"

    # Backfill Configuration
    LOAD_PAGE_SIZE: int = 200
    LOAD_RETRY_DELAY_SECONDS: float = 10.0
    LOAD_FETCH_CONCURRENCY: int = 25
    MAX_DURATION_SECONDS: int = 300  # request ceiling is enforced by the host

    # Application Configuration
    APP_ENV: str = "local"  # local, development, staging, production
    FRONTEND_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Database Configuration
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/inbox_stats.db"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.APP_ENV == "production"

    def is_local(self) -> bool:
        """Check if running in local environment."""
        return self.APP_ENV == "local"


# Global settings instance
settings = Settings()
