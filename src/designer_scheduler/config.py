"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".designer_scheduler" / "ds.db")
    work_start: int = 15
    lunch_start: int = 19
    lunch_end: int = 20
    work_end: int = 24
    utc_offset_hours: int = 0
    holidays: list[date] = field(default_factory=list)
    generalist_threshold_days: float = 10
    normal_before_low_threshold: int = 5
    consecutive_low_threshold: int = 4
    cache_ttl_seconds: int = 300
    log_level: str = "WARNING"
    slack_bot_token: str | None = None
    slack_channel: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("DS_DB_PATH"):
            config.db_path = Path(db)

        if start := os.environ.get("DS_WORK_START"):
            config.work_start = int(start)

        if lunch_start := os.environ.get("DS_LUNCH_START"):
            config.lunch_start = int(lunch_start)

        if lunch_end := os.environ.get("DS_LUNCH_END"):
            config.lunch_end = int(lunch_end)

        if end := os.environ.get("DS_WORK_END"):
            config.work_end = int(end)

        if offset := os.environ.get("DS_UTC_OFFSET"):
            config.utc_offset_hours = int(offset)

        if holidays := os.environ.get("DS_HOLIDAYS"):
            config.holidays = [
                date.fromisoformat(h.strip()) for h in holidays.split(",") if h.strip()
            ]

        if threshold := os.environ.get("DS_GENERALIST_THRESHOLD_DAYS"):
            config.generalist_threshold_days = float(threshold)

        if normal := os.environ.get("DS_NORMAL_BEFORE_LOW"):
            config.normal_before_low_threshold = int(normal)

        if low := os.environ.get("DS_CONSECUTIVE_LOW"):
            config.consecutive_low_threshold = int(low)

        if ttl := os.environ.get("DS_CACHE_TTL"):
            config.cache_ttl_seconds = int(ttl)

        if level := os.environ.get("DS_LOG_LEVEL"):
            config.log_level = level.upper()

        config.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN")
        config.slack_channel = os.environ.get("DS_SLACK_CHANNEL")

        return config


def get_config() -> Config:
    return Config.from_env()
