"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Centralised settings — no hardcoded values anywhere else."""

    # Database
    database_url: str = Field(..., env="DATABASE_URL")

    # Security
    allowed_origins: str = Field(
        "http://localhost:3000",
        env="ALLOWED_ORIGINS",
    )

    # App
    app_env: str = Field("development", env="APP_ENV")
    log_level: str = Field("INFO", env="LOG_LEVEL")

    # Order lifecycle
    transition_max_retries: int = Field(3, env="TRANSITION_MAX_RETRIES")
    notification_max_attempts: int = Field(10, env="NOTIFICATION_MAX_ATTEMPTS")

    # Trending / recommendations
    trending_window_days: int = Field(7, env="TRENDING_WINDOW_DAYS")
    trending_min_orders: int = Field(5, env="TRENDING_MIN_ORDERS")
    recommendation_cache_ttl: int = Field(3600, env="RECOMMENDATION_CACHE_TTL")

    # View history
    view_coalesce_minutes: int = Field(60, env="VIEW_COALESCE_MINUTES")
    view_retention_days: int = Field(90, env="VIEW_RETENTION_DAYS")

    @field_validator("database_url")
    @classmethod
    def _async_driver(cls, value: str) -> str:
        """Plain postgres:// URLs (as issued by most hosts) are pointed at asyncpg."""
        for prefix in ("postgres://", "postgresql://"):
            if value.startswith(prefix):
                return "postgresql+asyncpg://" + value[len(prefix):]
        return value

    # Derived
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


settings = get_settings()
