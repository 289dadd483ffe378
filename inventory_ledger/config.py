from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/inventory"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    SLOW_QUERY_THRESHOLD_MS: int = 500

    # Row lock wait before a contended operation fails with a retryable conflict
    LOCK_TIMEOUT_MS: int = 5000
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0

    # Fallback actor for price history attribution
    SYSTEM_USER_EMAIL: str = "system@inventory.local"
    SYSTEM_USER_FIRST_NAME: str = "System"
    SYSTEM_USER_LAST_NAME: str = "User"

    # Inventory defaults
    DEFAULT_CHANGE_REASON: str = "Manual price update"
    DEFAULT_MIN_STOCK_LEVEL: int = 5

    # Margin categories (percent)
    MARGIN_LOW_MAX: float = 15.0
    MARGIN_MEDIUM_MAX: float = 30.0

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    @field_validator('ENVIRONMENT')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        v = v.lower()
        if v not in ("development", "staging", "production", "test"):
            raise ValueError(f"Unknown environment: {v}")
        return v

    @model_validator(mode='after')
    def harden_production(self) -> "Settings":
        """Never run production with debug output or open API docs."""
        if self.ENVIRONMENT == "production":
            self.DEBUG = False
            self.DOCS_ENABLED = False
        if self.MARGIN_MEDIUM_MAX < self.MARGIN_LOW_MAX:
            raise ValueError("MARGIN_MEDIUM_MAX must be >= MARGIN_LOW_MAX")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT in ("production", "staging")

    @property
    def sqlalchemy_echo(self) -> bool:
        # SECURITY: echo logs bound parameters, keep it out of production
        return self.DEBUG and not self.is_production

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
