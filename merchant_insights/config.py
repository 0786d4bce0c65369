"""
Configuration settings for Merchant Insights.

Uses Pydantic Settings to load environment variables for the database
connection, the ingestion pipeline, analytics precomputation, and logging.
Values can also be supplied through a local `.env` file.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("merchant_insights", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Ingestion
    data_dir: Path = Field(Path("./data"), alias="DATA_DIR")
    batch_size: int = Field(5_000, alias="BATCH_SIZE", gt=0)
    file_concurrency: int = Field(2, alias="FILE_CONCURRENCY", gt=0)
    max_write_attempts: int = Field(3, alias="MAX_WRITE_ATTEMPTS", gt=0)
    retry_base_delay_ms: int = Field(500, alias="RETRY_BASE_DELAY_MS", ge=0)
    data_year: int = Field(2024, alias="DATA_YEAR")

    # Analytics
    slow_query_threshold_ms: int = Field(100, alias="SLOW_QUERY_THRESHOLD_MS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
