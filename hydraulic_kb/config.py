"""
config.py — Environment-based configuration using Pydantic Settings.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="HKB_",
    )

    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = "postgresql://kb:kb@localhost:5432/hydraulic_kb"
    db_pool_min: int = 2
    db_pool_max: int = 10
    db_command_timeout: int = 30

    # ── Inference ────────────────────────────────────────────────────────
    closure_max_iterations: int = 25
    spec_cache_size: int = 4096

    # ── Compatibility ────────────────────────────────────────────────────
    compatibility_threshold: float = 0.3
    max_suggestions_per_category: int = 10

    # ── Similarity ───────────────────────────────────────────────────────
    similarity_threshold: float = 0.3
    similarity_top_n: int = 20
    bore_tolerance_mm: int = 20
    stroke_tolerance_mm: int = 50
    score_cache_size: int = 10000
    score_cache_ttl_seconds: int = 3600
    search_cache_size: int = 100
    search_cache_ttl_seconds: int = 1800

    # ── Batch ────────────────────────────────────────────────────────────
    worker_pool_size: int = 8
    batch_size: int = 50
    task_timeout_seconds: float = 120.0
    max_retries: int = 3

    # ── Maintenance ──────────────────────────────────────────────────────
    cleanup_retention_days: int = 30

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "text"  # json | text
    log_file: Optional[str] = None

    # ── Computed Properties ──────────────────────────────────────────────

    @property
    def asyncpg_dsn(self) -> str:
        """Convert SQLAlchemy-style URL to plain asyncpg DSN."""
        url = self.database_url
        for prefix in ["postgresql+asyncpg://", "postgresql://"]:
            if url.startswith(prefix):
                return "postgresql://" + url[len(prefix):]
        return url

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        valid = {"json", "text"}
        if v.lower() not in valid:
            raise ValueError(f"log_format must be one of {valid}")
        return v.lower()

    @field_validator("compatibility_threshold", "similarity_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("thresholds must lie in [0, 1]")
        return v

    @field_validator("worker_pool_size", "batch_size", "cleanup_retention_days")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
