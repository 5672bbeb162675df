from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite+aiosqlite:///./shortener.db"
    REDIS_URL: Optional[str] = None
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Public origin used to build short URLs in API responses
    BASE_URL: str = "http://localhost:8000"

    SWEEP_INTERVAL_SECONDS: int = 3600
    CACHE_DEFAULT_TTL_SECONDS: int = 86400
    MAX_ALIAS_LENGTH: int = 32
    MAX_CODE_ATTEMPTS: int = 5


settings = Settings()
