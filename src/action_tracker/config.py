"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_MONITOR_INTERVAL = 5 * 60.0


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".action_tracker" / "tracker.db")
    monitor_interval: float = DEFAULT_MONITOR_INTERVAL
    monitor_enabled: bool = True
    slack_bot_token: str | None = None
    slack_channel: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("AT_DB_PATH"):
            config.db_path = Path(db)

        if interval := os.environ.get("AT_MONITOR_INTERVAL"):
            config.monitor_interval = float(interval)

        if enabled := os.environ.get("AT_MONITOR_ENABLED"):
            config.monitor_enabled = enabled.strip().lower() not in ("0", "false", "no", "off")

        config.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN")
        config.slack_channel = os.environ.get("AT_SLACK_CHANNEL")

        return config


def get_config() -> Config:
    return Config.from_env()
