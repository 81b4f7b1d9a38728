"""
Application configuration loaded from environment variables.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Assistance scheduler configuration."""

    model_config = SettingsConfigDict(env_prefix="ASSIST_", env_file=".env", extra="ignore")

    # Database
    database_url: str = "sqlite+aiosqlite:///./assistance.db"
    create_tables: bool = True  # development only; use migrations in production

    # Key for the opaque identifier codec. Rotating it invalidates every token
    # handed out so far.
    identifier_secret: str = "CHANGE_ME_IN_PRODUCTION"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["http://localhost:5173"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
