# api/app/config.py
from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application configuration.

    Loads environment variables from `.env` and provides
    typed access across API, worker, and client poller.
    """

    # ─────────────────────────────────────────────
    # Pydantic Settings Config
    # ─────────────────────────────────────────────
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ─────────────────────────────────────────────
    # Database
    # ─────────────────────────────────────────────
    database_url: str
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # ─────────────────────────────────────────────
    # Content generator (OpenAI-compatible gateway)
    # ─────────────────────────────────────────────
    openai_api_key: str
    openai_base_url: str | None = None
    openai_model: str = "google/gemini-2.5-flash"
    generator_timeout_seconds: float = 120.0

    # ─────────────────────────────────────────────
    # API
    # ─────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    worker_trigger_secret: str | None = None

    # ─────────────────────────────────────────────
    # Worker
    # ─────────────────────────────────────────────
    worker_poll_interval: float = 30.0
    worker_batch_size: int = 10
    worker_concurrency: int = 1
    job_max_attempts: int = 3
    # base delay before a failed job is eligible again, doubled per attempt; 0 = next cycle
    job_retry_backoff_seconds: float = 0.0
    # processing jobs older than this are handed back; 0 disables
    job_lease_seconds: int = 600

    # ─────────────────────────────────────────────
    # Rate limits (requests per window)
    # ─────────────────────────────────────────────
    rate_limit_window_seconds: int = 3600
    rate_limit_create_path: int = 5
    rate_limit_extend_path: int = 10

    # ─────────────────────────────────────────────
    # Generation
    # ─────────────────────────────────────────────
    lessons_per_batch: int = 3
    file_context_chars: int = 3000

    # ─────────────────────────────────────────────
    # Client poller
    # ─────────────────────────────────────────────
    api_base_url: str = "http://localhost:8000"
    poll_interval_seconds: float = 2.0

    def rate_limit_for(self, action_type: str) -> int:
        """Ceiling for an action; unknown actions fall back to the strictest one."""
        limits = {
            "create_path": self.rate_limit_create_path,
            "extend_path": self.rate_limit_extend_path,
        }
        return limits.get(action_type, min(limits.values()))


# ─────────────────────────────────────────────
# Cached Settings Instance
# ─────────────────────────────────────────────
@lru_cache
def get_settings() -> Settings:
    """
    Returns a cached Settings instance so config
    is only loaded once per process.
    """
    return Settings()
