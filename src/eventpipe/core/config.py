"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from .enums import ChannelBackend


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class BusConfig(BaseModel):
    # Deadline applied to every deferred handler completion; None disables
    handler_timeout_seconds: float | None = 30.0


class RelayConfig(BaseModel):
    backend: ChannelBackend = ChannelBackend.MEMORY
    channel: str = "eventpipe:events"


class JobsConfig(BaseModel):
    secret: str = ""  # Salt for deterministic job ids
    reuse_window_minutes: int = 5
    batch_size: int = Field(default=100, gt=0)
    export_dir: str = "data/exports"
    # Deadline for one job execution; None disables
    timeout_seconds: float | None = 3600.0


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level application settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    bus: BusConfig = Field(default_factory=BusConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    # Infrastructure
    redis_url: str = "redis://localhost:6379/0"
    database_url: str | None = None  # e.g. postgresql+asyncpg://...

    model_config = {"env_prefix": "EVENTPIPE_", "env_nested_delimiter": "__"}

    def validate_secrets(self) -> None:
        """Refuse to derive job ids from an empty secret across processes."""
        from .errors import ConfigError

        if self.relay.backend == ChannelBackend.MEMORY:
            return

        if not self.jobs.secret:
            raise ConfigError(
                "Redis relay requires EVENTPIPE_JOBS__SECRET to be set."
            )


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    return Settings(**data)
