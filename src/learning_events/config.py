"""Configuration: buffer options and environment-backed settings."""

import logging
import os
from functools import lru_cache

from pydantic import BaseModel, field_validator

ENV_PREFIX = "LEARNING_EVENTS_"


class EventLoggerOptions(BaseModel):
    batch_size: int = 25
    flush_interval_ms: int = 30_000
    max_retries: int = 3
    retry_delay_ms: int = 1_000
    max_retry_delay_ms: int = 60_000
    debug: bool = False

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("batch_size must be at least 1")
        return v

    @field_validator("flush_interval_ms", "retry_delay_ms", "max_retry_delay_ms")
    @classmethod
    def validate_positive_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("intervals must be positive")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must not be negative")
        return v

    @property
    def flush_interval(self) -> float:
        return self.flush_interval_ms / 1000

    @property
    def retry_delay(self) -> float:
        return self.retry_delay_ms / 1000

    @property
    def max_retry_delay(self) -> float:
        return self.max_retry_delay_ms / 1000


class Settings(BaseModel):
    # Required
    api_url: str

    # Optional with defaults
    api_timeout: float = 10.0
    batch_size: int = 25
    flush_interval_ms: int = 30_000
    max_retries: int = 3
    retry_delay_ms: int = 1_000
    max_retry_delay_ms: int = 60_000
    debug: bool = False
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        numeric = getattr(logging, v.upper(), None)
        if not isinstance(numeric, int):
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    def logger_options(self) -> EventLoggerOptions:
        """Project the buffer options out of the settings."""
        return EventLoggerOptions(
            batch_size=self.batch_size,
            flush_interval_ms=self.flush_interval_ms,
            max_retries=self.max_retries,
            retry_delay_ms=self.retry_delay_ms,
            max_retry_delay_ms=self.max_retry_delay_ms,
            debug=self.debug,
        )


def _load_from_env() -> Settings:
    """Build Settings from LEARNING_EVENTS_* environment variables."""
    env = {}
    for field_name in Settings.model_fields:
        env_key = ENV_PREFIX + field_name.upper()
        val = os.environ.get(env_key)
        if val is not None:
            env[field_name] = val
    return Settings(**env)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    return _load_from_env()
