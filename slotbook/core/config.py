# slotbook/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
import urllib.parse

class Settings(BaseSettings):
    # Read env from .env; ignore unknown keys so extra lines don't crash startup
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Database ---
    # Full async URL (e.g. sqlite+aiosqlite:///./data/slotbook.db) wins over the POSTGRES_* parts
    DATABASE_URL: str | None = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "slotbook"
    POSTGRES_USER: str = "slotbook"
    POSTGRES_PASSWORD: str = ""
    SQLITE_BUSY_TIMEOUT: float = 5.0
    AUTO_CREATE_TABLES: bool = False

    # --- Security ---
    API_KEY: str | None = None

    # --- Monitoring & Logging ---
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_REQUESTS: bool = False
    LOG_RESPONSES: bool = False
    MAX_LOG_LENGTH: int = 200
    SLOW_REQUEST_THRESHOLD: float = 2.0
    METRICS_RETENTION_SAMPLES: int = 1000

    # --- Booking ---
    LOCAL_TIMEZONE: str = "America/Edmonton"
    BOOKING_MAX_ATTEMPTS: int = 3
    BOOKING_RETRY_BASE_DELAY: float = 0.05
    BOOKING_RETRY_MAX_DELAY: float = 1.0
    DEFAULT_SLOT_MINUTES: int = 60
    DEFAULT_BOOKING_STATUS: str = "confirmed"
    ROUND_DURATION_TO_HOURS: bool = False

    # Async URI (SQLAlchemy engine)
    @property
    def async_db_uri(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        pwd = urllib.parse.quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{pwd}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Sync URI (Alembic)
    @property
    def sync_db_uri(self) -> str:
        return (
            self.async_db_uri
            .replace("+asyncpg", "")
            .replace("+aiosqlite", "")
        )

    @property
    def is_sqlite(self) -> bool:
        return self.async_db_uri.startswith("sqlite")

    # Monitoring helpers
    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() in ("production", "prod")

# Singleton
settings = Settings()
