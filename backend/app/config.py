"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Workflow Block Engine"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production, testing

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./blocks.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Read table / query blocks
    READ_TABLE_DEFAULT_LIMIT: int = 100
    READ_TABLE_MAX_LIMIT: int = 1000

    # Collection blocks
    FIND_RECORD_DEFAULT_LIMIT: int = 1

    # External send blocks
    EXTERNAL_SEND_TIMEOUT_SECONDS: float = 30.0
    EXTERNAL_SEND_BLOCKED_PORTS: list[int] = [5432, 6379, 9000]

    # Write blocks
    WRITE_IDEMPOTENCY_ENABLED: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get engine settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
