"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./merchant_discovery.db"

    # Reasoning service (OpenAI-compatible chat completions)
    reasoning_api_key: str | None = None
    reasoning_base_url: str = "https://api.anthropic.com/v1/"
    reasoning_model: str = "claude-sonnet-4-5-20250929"
    reasoning_max_tokens: int = 2000
    reasoning_timeout_seconds: float = 600.0
    reasoning_max_retries: int = 3
    reasoning_max_concurrency: int = 5

    # Web search (Brave)
    brave_search_api_key: str | None = None
    brave_search_base_url: str = "https://api.search.brave.com/res/v1/web/search"
    web_search_max_results: int = 5
    web_search_min_interval_seconds: float = 1.1  # Brave free tier: 1 req/s

    # Inference thresholds
    reinference_confidence_threshold: float = 0.7
    web_search_confidence_threshold: float = 0.7
    forced_confirmed_confidence: float = 0.95
    forced_corrected_confidence: float = 0.98

    # Service
    service_name: str = "merchant-discovery"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 10.0


settings = Settings()
