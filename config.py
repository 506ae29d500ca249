from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, read from the environment or a local .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    PROJECT_NAME: str = Field(default="ChroniCare API", alias="APP_NAME")
    ENVIRONMENT: str = Field(default="dev", alias="ENV")  # dev|staging|prod
    API_PREFIX: str = Field(default="/api")
    PROJECT_VERSION: str = Field(default="1.0.0")

    LOG_LEVEL: str = Field(default="INFO")
    JSON_LOGS: bool = Field(default=False)

    # Populate the store with demo patients on startup
    SEED_SAMPLE_DATA: bool = Field(default=True)

    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)


@lru_cache
def get_settings() -> Settings:
    return Settings()
