"""Environment-driven configuration."""

from __future__ import annotations

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError
from .history import (
    DynamoHistoryTable,
    HistoryTable,
    SqliteHistoryTable,
    resolve_sqlite_path,
)
from .state import FileStateStore, S3StateStore, StateStore

DEFAULT_TARGET_URL = (
    "https://www.avaloncommunities.com/california/"
    "san-francisco-apartments/avalon-at-mission-bay/apartments"
)
DEFAULT_MAX_PRICE = 3700
DEFAULT_MOVE_START = "Feb 10, 2020"
DEFAULT_MOVE_END = "Feb 23, 2020"
DEFAULT_REGION = "us-west-2"


def env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class Settings:
    """Run configuration shared by the alert and daily-stats jobs."""

    target_url: str = DEFAULT_TARGET_URL
    max_price: int = DEFAULT_MAX_PRICE
    move_start: str = DEFAULT_MOVE_START
    move_end: str = DEFAULT_MOVE_END
    region: str = DEFAULT_REGION
    state_backend: str = "s3"
    state_bucket: str = "avalon-alert"
    state_key: str = "alert-map"
    state_path: str = "alert-map.json"
    history_backend: str = "dynamodb"
    history_table: str = "AvalonDailyStats"
    database_url: str = "sqlite:///avalon_stats.db"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            target_url=env.get("TARGET_URL") or defaults.target_url,
            max_price=env_int(env, "MAX_PRICE", defaults.max_price),
            move_start=env.get("MOVE_DATE_START") or defaults.move_start,
            move_end=env.get("MOVE_DATE_END") or defaults.move_end,
            region=env.get("AWS_REGION") or defaults.region,
            state_backend=(env.get("STATE_BACKEND") or defaults.state_backend).lower(),
            state_bucket=env.get("STATE_BUCKET") or defaults.state_bucket,
            state_key=env.get("STATE_KEY") or defaults.state_key,
            state_path=env.get("STATE_PATH") or defaults.state_path,
            history_backend=(env.get("HISTORY_BACKEND") or defaults.history_backend).lower(),
            history_table=env.get("HISTORY_TABLE") or defaults.history_table,
            database_url=env.get("DATABASE_URL") or defaults.database_url,
        )


def build_state_store(settings: Settings) -> StateStore:
    """Return the alert state store selected by ``STATE_BACKEND``."""
    if settings.state_backend == "s3":
        return S3StateStore(
            bucket=settings.state_bucket,
            key=settings.state_key,
            region=settings.region,
        )
    if settings.state_backend == "file":
        return FileStateStore(path=Path(settings.state_path).expanduser())
    raise ConfigurationError(f"Unknown STATE_BACKEND {settings.state_backend!r}")


def build_history_table(settings: Settings) -> HistoryTable:
    """Return the history table selected by ``HISTORY_BACKEND``."""
    if settings.history_backend == "dynamodb":
        return DynamoHistoryTable(table_name=settings.history_table, region=settings.region)
    if settings.history_backend == "sqlite":
        table = SqliteHistoryTable(path=resolve_sqlite_path(settings.database_url))
        table.initialize()
        return table
    raise ConfigurationError(f"Unknown HISTORY_BACKEND {settings.history_backend!r}")
