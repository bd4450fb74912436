"""Manager configuration schema."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ManagerSettings(BaseModel):
    """Runtime configuration for the manager service.

    Loaded from ``config/defaults.toml`` and overridden by environment
    variables (see ``snapcheck.settings``).
    """

    env: str = Field(default="development", description="Deployment environment name")
    host: str = Field(default="0.0.0.0", description="Interface the API binds to")
    port: int = Field(default=3002, ge=1, le=65535, description="Port the API listens on")
    database_path: str = Field(
        default="~/.snapcheck/snapcheck.db",
        description="SQLite database file (':memory:' for an in-memory database)",
    )
    worker_run_path: str = Field(
        default="/v0/run", description="Path appended to a checklist's worker origin",
    )
    worker_timeout: float = Field(
        default=30.0, gt=0, description="Seconds before a worker call is abandoned",
    )
    webhook_timeout: float = Field(
        default=5.0, gt=0, description="Seconds before a webhook delivery is abandoned",
    )
    scheduler_enabled: bool = Field(
        default=True, description="Whether the cron scheduler runs inside the API process",
    )
    scheduler_interval: float = Field(
        default=60.0, gt=0, description="Seconds between scheduler ticks",
    )
    log_level: str = Field(default="INFO", description="Root log level for the CLI")
