"""Configuration and environment settings for the marketplace payments service."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the marketplace payments service."""

    database_url: str = "sqlite:///./database.sqlite3"
    lock_timeout_seconds: float = 5.0
    sql_echo: bool = False
    log_level: str = "INFO"
    log_file: str | None = None
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings."""
    return Settings()
