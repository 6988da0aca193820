"""Environment-driven application settings for the time-clock service."""

from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./timeclock.db"
    DEBUG: bool = True
    ALLOWED_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # Day boundary used by the clock-type inference (IANA zone name)
    TIMEZONE: str = "UTC"

    # Control iD device API
    DEVICE_TIMEOUT_SECONDS: float = 10.0
    DEVICE_DEFAULT_LOGIN: str = "admin"
    DEVICE_DEFAULT_PASSWORD: str = "admin"
    POLL_LOOKBACK_HOURS: int = 24

    class Config:
        env_file = str(Path(__file__).resolve().parents[1] / ".env")


settings = Settings()
