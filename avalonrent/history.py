"""Append-only storage of daily scrape results."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Protocol, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from openpyxl import Workbook

from .errors import StorageError
from .models import ListingRecord

logger = logging.getLogger(__name__)

# DynamoDB rejects BatchWriteItem requests with more than 25 items.
BATCH_SIZE = 25
SQLITE_PREFIX = "sqlite://"

HISTORY_COLUMNS = (
    "AptNum",
    "CreatedAtMs",
    "Bedroom",
    "Bath",
    "Sqft",
    "Price",
    "AvailableStart",
    "AvailableEnd",
    "Signature",
)
NUMERIC_COLUMNS = frozenset({"CreatedAtMs", "Sqft", "Price"})


def to_epoch_ms(record: ListingRecord) -> int:
    if record.captured_at is None:
        return 0
    return int(record.captured_at.timestamp() * 1000)


def build_history_item(record: ListingRecord) -> Dict[str, Any]:
    """Flatten a listing into one history row."""
    return {
        "AptNum": record.unit_id,
        "CreatedAtMs": to_epoch_ms(record),
        "Bedroom": record.bedroom,
        "Bath": record.bath,
        "Sqft": record.sqft,
        "Price": record.price,
        "AvailableStart": record.available_start.isoformat() if record.available_start else "",
        "AvailableEnd": record.available_end.isoformat() if record.available_end else "",
        "Signature": record.signature,
    }


class HistoryTable(Protocol):
    """Protocol for stores that accept one batch of history rows per call."""

    def write_batch(self, items: Sequence[Dict[str, Any]]) -> None:
        ...


def chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def append_history(
    records: Iterable[ListingRecord],
    table: HistoryTable,
    batch_size: int = BATCH_SIZE,
) -> int:
    """Write every record to the table in groups of ``batch_size``.

    The first failing group aborts the rest; groups already written stay
    written. Returns the number of groups written.
    """
    items = [build_history_item(record) for record in records]
    written = 0
    for batch in chunked(items, batch_size):
        try:
            table.write_batch(batch)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(
                f"Failed to batch write daily stats (group {written + 1})"
            ) from exc
        written += 1
        logger.debug("Wrote history group %d (%d items)", written, len(batch))
    logger.info("Appended %d history rows in %d group(s)", len(items), written)
    return written


@dataclass
class DynamoHistoryTable:
    """History rows stored in a DynamoDB table."""

    table_name: str = "AvalonDailyStats"
    region: str = "us-west-2"
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = boto3.client("dynamodb", region_name=self.region)

    def write_batch(self, items: Sequence[Dict[str, Any]]) -> None:
        write_requests = [
            {"PutRequest": {"Item": _to_attribute_values(item)}} for item in items
        ]
        try:
            response = self.client.batch_write_item(
                RequestItems={self.table_name: write_requests}
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"BatchWriteItem to {self.table_name} failed") from exc

        unprocessed = (response or {}).get("UnprocessedItems", {}).get(self.table_name, [])
        if unprocessed:
            logger.warning(
                "%d item(s) left unprocessed by %s; not retrying",
                len(unprocessed),
                self.table_name,
            )


def _to_attribute_values(item: Dict[str, Any]) -> Dict[str, Dict[str, str]]:
    values = {}
    for column in HISTORY_COLUMNS:
        value = item[column]
        if column in NUMERIC_COLUMNS:
            values[column] = {"N": str(value)}
        else:
            values[column] = {"S": str(value)}
    return values


def resolve_sqlite_path(database_url: str) -> Path:
    """Translate a DATABASE_URL into a filesystem path."""
    if not database_url:
        raise ValueError("DATABASE_URL must not be empty")

    if database_url.startswith(SQLITE_PREFIX):
        raw_path = database_url[len(SQLITE_PREFIX) :]
        # Allow sqlite:///path/to/file and sqlite://path/to/file styles.
        if raw_path.startswith("/"):
            raw_path = raw_path[1:]
        path = Path(raw_path)
    else:
        path = Path(database_url)

    if not path.is_absolute():
        path = Path.cwd() / path

    return path.expanduser().resolve()


@dataclass
class SqliteHistoryTable:
    """Local append-only history table for runs without AWS."""

    path: Path

    def connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.path)

    def initialize(self) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS daily_stats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    apt_num TEXT NOT NULL,
                    created_at_ms INTEGER NOT NULL,
                    bedroom TEXT,
                    bath TEXT,
                    sqft INTEGER NOT NULL DEFAULT 0,
                    price INTEGER NOT NULL DEFAULT 0,
                    available_start TEXT,
                    available_end TEXT,
                    signature TEXT
                )
                """
            )

    def write_batch(self, items: Sequence[Dict[str, Any]]) -> None:
        try:
            with self.connect() as conn:
                conn.executemany(
                    """
                    INSERT INTO daily_stats (
                        apt_num, created_at_ms, bedroom, bath, sqft, price,
                        available_start, available_end, signature
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [tuple(item[column] for column in HISTORY_COLUMNS) for item in items],
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to append history rows to {self.path}") from exc

    def fetch_rows(self) -> List[Tuple[Any, ...]]:
        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT apt_num, created_at_ms, bedroom, bath, sqft, price,
                       available_start, available_end, signature
                FROM daily_stats
                ORDER BY created_at_ms, id
                """
            )
            return list(cursor.fetchall())

    def export_to_xlsx(self, path: Path) -> Path:
        """Write every stored history row to an Excel workbook."""
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "daily_stats"
        sheet.append(list(HISTORY_COLUMNS))
        for row in self.fetch_rows():
            sheet.append(list(row))
        path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(path)
        return path
