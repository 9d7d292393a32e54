"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """VitalSync server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; binding elsewhere requires the explicit override below
    # because the tool surface has no auth layer of its own.
    vitalsync_host: str = "127.0.0.1"
    vitalsync_port: int = 8001
    vitalsync_log_level: str = "info"
    vitalsync_allow_insecure_bind: bool = False

    # Storage (metric store)
    db_path: str = "~/.vitalsync/metrics.db"
    db_pool_size: int = 10

    # Insights
    insights_timeout_seconds: float = 10.0
    score_weight_scheme: Literal["baseline", "enhanced"] = "baseline"
    step_streak_threshold: int = 8000
    sleep_streak_threshold: float = 7.0

    # Encryption of archived raw device payloads (empty disables the archive)
    encryption_key: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
