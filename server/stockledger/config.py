from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from STOCKLEDGER_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="STOCKLEDGER_", env_file=".env", extra="ignore")

    # Database
    DATABASE_URL: str = "sqlite+pysqlite:///./stockledger.db"
    SQL_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    # Inventory policies
    ALLOW_BACKORDERS: bool = True  # shortfall on sales orders becomes backorder instead of an error
    ALLOW_NEGATIVE_ON_HAND: bool = True
    COST_SHORTFALL_POLICY: Literal["log", "fail"] = "log"

    # Recorded as created_by when a command does not name an actor
    DEFAULT_ACTOR: str = "system"

    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
