"""Core execution workflows for avalon-rent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .alerts import build_move_window, evaluate_alerts
from .history import HistoryTable, append_history
from .models import AlertResult, ListingRecord
from .notifications import (
    ALERT_SUBJECT,
    Notifier,
    format_alert_email,
    format_error_email,
)
from .scraper import LISTING_URL, fetch_listings
from .state import StateStore

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], List[ListingRecord]]

FETCH_ERROR_SUBJECT = "Avalon Apt Info Get Error"
HISTORY_ERROR_SUBJECT = "Avalon Update Daily Stats Error"
SETUP_ERROR_SUBJECT = "Avalon Daily Stats Setup Error"


def report_failure(notifier: Optional[Notifier], subject: str, exc: BaseException) -> None:
    """Email a failure report; delivery problems are logged, not raised."""
    if notifier is None:
        return
    try:
        notifier.send(subject, format_error_email(exc))
    except Exception:  # noqa: BLE001
        logger.exception("Failed to deliver failure report %r", subject)


@dataclass
class AlertRunner:
    """Coordinates scrape, alert evaluation, persistence, and email."""

    store: StateStore
    notifier: Optional[Notifier]
    max_price: int
    move_start: str
    move_end: str
    target_url: str = LISTING_URL
    fetcher: Fetcher = field(default_factory=lambda: fetch_listings)

    def run(self, dry_run: bool = False) -> AlertResult:
        """Execute a single alert cycle."""
        window = build_move_window(self.move_start, self.move_end)
        logger.info(
            "Starting alert cycle for %s (max price %d, move-in %s to %s)",
            self.target_url,
            self.max_price,
            window.start,
            window.end,
        )

        records = self.fetcher(self.target_url)
        previous_state = self.store.load()
        result = evaluate_alerts(records, previous_state, self.max_price, window)
        logger.info(
            "Alert diff: %d new, %d deprecated, %d existing",
            len(result.new),
            len(result.deprecated),
            len(result.existing),
        )

        if not result.has_changes:
            logger.info("No new result")
            return result

        if dry_run:
            logger.info("Dry run; skipping state upload and email")
            return result

        # The state is only saved after a successful send, so a failed email
        # reports the same units again on the next run.
        if self.notifier is None:
            logger.warning("No notifier configured; alert email not sent")
        else:
            self.notifier.send(ALERT_SUBJECT, format_alert_email(result))
        self.store.save(result.state)
        return result


@dataclass
class DailyStatsRunner:
    """Scrapes the listing page and appends every unit to the history table."""

    table: HistoryTable
    notifier: Optional[Notifier] = None
    target_url: str = LISTING_URL
    fetcher: Fetcher = field(default_factory=lambda: fetch_listings)

    def run(self) -> int:
        """Execute one history append; returns the number of groups written."""
        try:
            records = self.fetcher(self.target_url)
        except Exception as exc:
            logger.exception("Fetching %s failed", self.target_url)
            report_failure(self.notifier, FETCH_ERROR_SUBJECT, exc)
            raise

        try:
            groups = append_history(records, self.table)
        except Exception as exc:
            logger.exception("Appending daily stats failed")
            report_failure(self.notifier, HISTORY_ERROR_SUBJECT, exc)
            raise

        logger.info("Update daily stats success")
        return groups

