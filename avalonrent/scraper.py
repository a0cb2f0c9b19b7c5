"""HTML scraper for the Avalon listing page."""

from __future__ import annotations

import datetime as dt
import logging
import re
from typing import List, Optional
from urllib.parse import urljoin
from zoneinfo import ZoneInfo

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from .config import DEFAULT_TARGET_URL
from .models import ListingRecord

logger = logging.getLogger(__name__)

LISTING_URL = DEFAULT_TARGET_URL
AVAILABILITY_PATTERN = re.compile(r"Available (.*) — (.*)")
DATE_FORMAT = "%b %d, %Y"
# The page lists year-less dates in the community's local time.
PAGE_TIMEZONE = ZoneInfo("America/Los_Angeles")
DEFAULT_TIMEOUT = 20


def fetch_listings(
    url: str = LISTING_URL,
    session: requests.Session | None = None,
    timeout: int = DEFAULT_TIMEOUT,
    now: dt.datetime | None = None,
) -> List[ListingRecord]:
    """Download the listing page and extract the available units."""
    logger.debug("Fetching listing page %s", url)
    http = session or requests
    response = http.get(url, timeout=timeout)
    response.raise_for_status()

    captured_at = now or dt.datetime.now(dt.timezone.utc)
    records = parse_listings(response.text, url, captured_at)
    logger.info("Scraped %d available units from %s", len(records), url)
    return records


def parse_listings(
    html_text: str,
    page_url: str,
    captured_at: dt.datetime,
) -> List[ListingRecord]:
    """Extract listing records from the raw page markup.

    Units marked "Unavailable" are skipped. Fields that fail to parse are
    logged and left at their empty value; the record itself is still kept.
    """
    year = captured_at.astimezone(PAGE_TIMEZONE).year
    soup = BeautifulSoup(html_text, "html.parser")
    records: List[ListingRecord] = []
    for card in soup.select('li[class="apartment-card"]'):
        anchor = card.find("a", href=True)
        url = urljoin(page_url, anchor["href"]) if anchor else ""
        for content in card.select('div[class="content"]'):
            if "Unavailable" in content.get_text():
                continue
            records.append(_build_record(content, url, captured_at, year))
    return records


def _build_record(
    content: Tag,
    url: str,
    captured_at: dt.datetime,
    year: int,
) -> ListingRecord:
    unit_id = _child_text(content, "title")
    bedroom, bath, sqft = _parse_details(unit_id, _child_text(content, "details"))
    price = _parse_price(unit_id, _child_text(content, "price"))
    start, end = _parse_availability(
        unit_id, _child_text(content, "availability"), year
    )
    return ListingRecord(
        unit_id=unit_id,
        url=url,
        bedroom=bedroom,
        bath=bath,
        sqft=sqft,
        price=price,
        available_start=start,
        available_end=end,
        signature=_child_text(content, "signature"),
        captured_at=captured_at,
    )


def _child_text(content: Tag, class_fragment: str) -> str:
    node = content.select_one(f'div[class*="{class_fragment}"]')
    return node.get_text().strip() if node else ""


def _parse_details(unit_id: str, text: str) -> tuple[str, str, int]:
    parts = [part.strip() for part in text.split("•")]
    if len(parts) < 3:
        logger.warning(
            "Failed to parse details for apartment %s, details string %r",
            unit_id,
            text,
        )
        parts.extend([""] * (3 - len(parts)))

    sqft = 0
    sqft_text = parts[2].split(" ")[0] if parts[2] else ""
    if sqft_text:
        try:
            sqft = int(sqft_text.replace(",", ""))
        except ValueError:
            logger.warning(
                "Failed to parse sqft for apartment %s, sqft string %r",
                unit_id,
                parts[2],
            )
    return parts[0], parts[1], sqft


def _parse_price(unit_id: str, text: str) -> int:
    tokens = text.split()
    raw = tokens[-1] if tokens else ""
    # "$3,495" -> "3495"; cents are dropped.
    digits = re.sub(r"[^\d.]", "", raw).split(".")[0]
    try:
        return int(digits)
    except ValueError:
        logger.warning(
            "Failed to parse price for apartment %s, price string %r",
            unit_id,
            raw,
        )
        return 0


def _parse_availability(
    unit_id: str,
    text: str,
    year: int,
) -> tuple[Optional[dt.date], Optional[dt.date]]:
    match = AVAILABILITY_PATTERN.search(text)
    if not match:
        logger.warning(
            "Failed to parse availability for apartment %s, availability string %r",
            unit_id,
            text,
        )
        return None, None
    start = _parse_day(unit_id, "start", match.group(1), year)
    end = _parse_day(unit_id, "end", match.group(2), year)
    return start, end


def _parse_day(unit_id: str, label: str, text: str, year: int) -> Optional[dt.date]:
    try:
        return dt.datetime.strptime(f"{text.strip()}, {year}", DATE_FORMAT).date()
    except ValueError as exc:
        logger.warning(
            "Failed to parse available %s date for apartment %s, date string %r: %s",
            label,
            unit_id,
            text,
            exc,
        )
        return None
