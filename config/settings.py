"""Configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine defaults loaded from ASYNC_ENHANCE_* environment variables."""

    # Cache defaults (seconds / entries, -1 disables)
    default_ttl_seconds: float = -1
    default_capacity: int = -1

    # Delay before the amortized expiry sweep runs
    # 0 means "on the next loop iteration"
    sweep_delay_seconds: float = 0.0

    # Key used when call parameters cannot be serialized
    fallback_key: str = "[]"

    # Level applied to the "enhance" logger hierarchy
    log_level: str = "WARNING"

    class Config:
        env_prefix = "ASYNC_ENHANCE_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
