from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver", "test"]
DEFAULT_SECRET_KEY = "change-this-secret-key-in-production"
LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _split_csv(value: Any) -> list[str]:
    """Turn ``"a, b"`` or a list into a clean list of non-empty strings."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple, set)):
        return []
    return [str(part).strip() for part in value if str(part).strip()]


class Settings(BaseSettings):
    """Runtime configuration, read from the environment and ``.env``."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./statements.db"

    # Application
    ENV: str = "development"
    APP_NAME: str = "Statement Importer"
    DEBUG: bool = False
    SECRET_KEY: str = DEFAULT_SECRET_KEY
    SESSION_MAX_AGE_SECONDS: int = 30 * 24 * 60 * 60
    ALLOWED_HOSTS: list[str] = Field(default_factory=lambda: DEFAULT_ALLOWED_HOSTS.copy())

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Imports
    IMPORT_MAX_FILE_MB: int = Field(default=5, gt=0)
    IMPORT_DEFAULT_LOCALE: str = "pt-BR"
    IMPORT_ALLOCATION_TOLERANCE: Decimal = Field(default=Decimal("0.01"), ge=0, le=1)

    # Per-user upload throttling
    RATE_LIMIT_MAX: int = 5
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("ALLOWED_HOSTS", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, value: Any) -> list[str]:
        return _split_csv(value)

    @field_validator("LOG_LEVEL")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}")
        return level

    @field_validator("IMPORT_DEFAULT_LOCALE")
    @classmethod
    def normalize_locale(cls, value: str) -> str:
        return value.strip().replace("_", "-") or "pt-BR"

    @property
    def is_production(self) -> bool:
        return self.ENV.strip().lower() == "production"

    @property
    def import_max_file_bytes(self) -> int:
        return self.IMPORT_MAX_FILE_MB * 1024 * 1024

    def check_production_safety(self) -> None:
        """Refuse to boot production with development defaults."""
        if not self.is_production:
            return
        if len(self.SECRET_KEY) < 32 or self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY must be set to a strong value in production.")
        if not self.ALLOWED_HOSTS or self.ALLOWED_HOSTS == DEFAULT_ALLOWED_HOSTS:
            raise ValueError("ALLOWED_HOSTS must be configured explicitly in production.")
        if self.DATABASE_URL.startswith("sqlite"):
            raise ValueError("Use PostgreSQL in production; sqlite is only for local/dev.")


settings = Settings()
settings.check_production_safety()
