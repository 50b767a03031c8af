"""Pydantic Settings — loads configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "ignore"}

    target_url_template: str = "https://app.landingsite.ai/website-preview?id={id}"
    output_dir: str = "./screenshots"
    capture_profile: str = "standard"
    chrome_path: str = ""

    default_concurrency: int = 1
    default_retries: int = 3
    max_concurrency: int = 8
    max_retries: int = 10
    retry_base_delay: float = 0.0
    retry_max_delay: float = 30.0

    status_ttl_seconds: int = 86400
    redis_url: str = ""
    allowed_callback_hosts: str = ""
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
