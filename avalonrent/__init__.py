"""avalon-rent package initialization."""

from .alerts import evaluate_alerts, filter_listings, parse_move_date
from .config import Settings
from .errors import ConfigurationError, StorageError
from .history import DynamoHistoryTable, SqliteHistoryTable, append_history
from .models import AlertResult, AlertState, ListingRecord, MoveWindow
from .notifications import EmailNotifier, format_alert_email
from .runner import AlertRunner, DailyStatsRunner
from .scraper import fetch_listings, parse_listings
from .state import FileStateStore, S3StateStore

__all__ = [
    "AlertResult",
    "AlertRunner",
    "AlertState",
    "ConfigurationError",
    "DailyStatsRunner",
    "DynamoHistoryTable",
    "EmailNotifier",
    "FileStateStore",
    "ListingRecord",
    "MoveWindow",
    "S3StateStore",
    "Settings",
    "SqliteHistoryTable",
    "StorageError",
    "append_history",
    "evaluate_alerts",
    "fetch_listings",
    "filter_listings",
    "format_alert_email",
    "parse_listings",
    "parse_move_date",
]
