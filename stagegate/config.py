"""Runtime configuration — env-driven.

Centralized settings using pydantic-settings. Reads from a .env file and
STAGEGATE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export STAGEGATE_REGION=eu-west-1
        export STAGEGATE_LOG_LEVEL=DEBUG
        export STAGEGATE_LEDGER_PATH=/data/ledger.db

    Or via .env file::

        STAGEGATE_ENVIRONMENT=production
        STAGEGATE_APPROVAL_TIMEOUT_HOURS=168
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="STAGEGATE_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"

    # Storage paths
    ledger_path: Path = Path(".stagegate/ledger.db")
    artifact_store_path: Path = Path(".stagegate/artifacts")
    approval_outbox_path: Path = Path(".stagegate/approvals")
    hosts_root: Path = Path(".stagegate/hosts")

    # Topology
    application_name: str = "DemoApp"
    region: str = "us-east-1"
    account_id: str = "123456789012"
    console_base_url: str = "https://console.aws.amazon.com"

    # Execution
    build_timeout_seconds: int = 900
    approval_timeout_hours: int | None = None


# Module-level singleton — import as `from stagegate.config import settings`
settings = Settings()
