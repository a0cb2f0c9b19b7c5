"""Alert evaluation: filter a scrape and diff it against the stored state."""

from __future__ import annotations

import datetime as dt
from typing import Iterable, List, Mapping

from .errors import ConfigurationError
from .models import AlertResult, AlertState, ListingRecord, MoveWindow

MOVE_DATE_FORMAT = "%b %d, %Y"


def parse_move_date(text: str) -> dt.date:
    """Parse a configured move-in bound such as ``"Feb 10, 2020"``."""
    try:
        return dt.datetime.strptime(text.strip(), MOVE_DATE_FORMAT).date()
    except (AttributeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid move date {text!r}") from exc


def build_move_window(start_text: str, end_text: str) -> MoveWindow:
    return MoveWindow(start=parse_move_date(start_text), end=parse_move_date(end_text))


def overlaps(record: ListingRecord, window: MoveWindow) -> bool:
    """Return whether the unit's availability intersects the move-in window.

    An unknown start never excludes a unit, an unknown end always does.
    """
    if record.available_start is not None and record.available_start > window.end:
        return False
    if record.available_end is None or record.available_end < window.start:
        return False
    return True


def filter_listings(
    records: Iterable[ListingRecord],
    max_price: int,
    window: MoveWindow,
) -> List[ListingRecord]:
    """Keep affordable units whose availability overlaps the window."""
    return [
        record for record in records
        if record.price <= max_price and overlaps(record, window)
    ]


def evaluate_alerts(
    records: Iterable[ListingRecord],
    previous_state: Mapping[str, ListingRecord],
    max_price: int,
    window: MoveWindow,
) -> AlertResult:
    """Classify matching units as new, existing, or deprecated."""
    result = AlertResult()
    state: AlertState = {}
    for record in filter_listings(records, max_price, window):
        key = record.alert_key
        if key in state:
            continue
        state[key] = record
        if key in previous_state:
            result.existing.append(record)
        else:
            result.new.append(record)

    deprecated_keys = set(previous_state) - set(state)
    result.deprecated = [
        record for key, record in previous_state.items() if key in deprecated_keys
    ]
    result.state = state
    return result
