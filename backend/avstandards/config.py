"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    APP_NAME: str = "AV Standards Engine"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"
    CORS_ORIGINS: list[str] = ["*"]

    # Rule evaluation
    # Re-raise internal evaluation defects instead of logging and skipping the rule
    STRICT_EVALUATION: bool = False

    # Default severity policy: priority >= ERROR → error, >= WARNING → warning, else suggestion
    SEVERITY_ERROR_PRIORITY: int = 80
    SEVERITY_WARNING_PRIORITY: int = 40

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
