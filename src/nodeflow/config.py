"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``NODEFLOW_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="NODEFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    # Registry
    custom_nodes_dir: Path = Field(default_factory=lambda: Path.home() / ".nodeflow" / "custom_nodes")
    hot_reload: bool = False  # reload keeps re-importing plugin code; dev only

    # Graph validation
    input_conflict_policy: Literal["reject", "last_writer"] = "reject"

    # Queue
    queue_history_limit: int = 20
    queue_pending_display_limit: int = 10

    # Execution defaults for submissions that omit them
    default_compute_backend: str = "cpu"
    default_caching_strategy: str = "auto"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
