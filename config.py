"""
Configuration management for MedTrack
"""

from typing import Optional
from urllib.parse import urlparse
from pydantic import model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "MedTrack"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Data store: "sql" uses DATABASE_URL, "rest" talks to the hosted backend
    DATA_STORE: str = "sql"
    DATABASE_URL: str = "sqlite:///./medtrack.db"
    DATABASE_ECHO: bool = False

    # Hosted backend (PostgREST + identity provider)
    BACKEND_URL: Optional[str] = None
    BACKEND_API_KEY: Optional[str] = None
    BACKEND_TIMEOUT: float = 10.0

    # Retry policy for transient data-access failures
    RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 0.2  # seconds, doubled per attempt

    # Adherence
    ADHERENCE_WINDOW_DAYS: int = 30
    TIMEZONE: str = "UTC"
    TEMP_ID_PREFIX: str = "temp-"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @model_validator(mode="after")
    def check_settings(self) -> "Settings":
        try:
            ZoneInfo(self.TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown TIMEZONE: {self.TIMEZONE}") from e
        if self.DATA_STORE not in ("sql", "rest"):
            raise ValueError(f"Unknown DATA_STORE: {self.DATA_STORE}")
        if self.DATA_STORE == "rest":
            if not self.BACKEND_URL or not self.BACKEND_API_KEY:
                raise ValueError("BACKEND_URL and BACKEND_API_KEY are required for the rest data store")
            parsed = urlparse(self.BACKEND_URL)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ValueError("Invalid BACKEND_URL format")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
