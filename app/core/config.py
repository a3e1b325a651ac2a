# app/core/config.py
"""Application configuration using Pydantic."""
from pydantic_settings import BaseSettings
from typing import List

from .retry import RetryPolicy


class Settings(BaseSettings):
    database_url: str
    redis_url: str
    jwt_secret_key: str

    jwt_algorithm: str = 'HS256'
    app_version: str = '1.0.0'
    environment: str = 'development'
    log_level: str = 'info'
    allowed_origins: List[str] = ['*']

    # Chat behaviour
    typing_ttl_seconds: float = 2.0
    notification_ttl_days: int = 30
    history_default_limit: int = 50
    history_max_limit: int = 100

    # Retry/backoff for transient failures
    retry_max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_backoff_multiplier: float = 2.0

    model_config = {
        'env_file': '.env',
        'extra': 'ignore'
    }

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
        )


def get_settings() -> Settings:
    return Settings()
