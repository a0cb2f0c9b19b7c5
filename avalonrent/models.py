"""Core data models for avalon-rent."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _format_date(value: Optional[dt.date]) -> str:
    return value.isoformat() if value else ""


def _parse_date(value: Optional[str]) -> Optional[dt.date]:
    return dt.date.fromisoformat(value) if value else None


@dataclass(frozen=True)
class ListingRecord:
    """Represents one apartment unit scraped from the listing page."""

    unit_id: str
    url: str = ""
    bedroom: str = ""
    bath: str = ""
    sqft: int = 0
    price: int = 0
    available_start: Optional[dt.date] = None
    available_end: Optional[dt.date] = None
    signature: str = ""
    captured_at: Optional[dt.datetime] = None

    @property
    def alert_key(self) -> str:
        """Identity used to detect changes between runs."""
        return (
            f"{self.unit_id}-{self.price}-"
            f"{_format_date(self.available_start)}-{_format_date(self.available_end)}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "url": self.url,
            "bedroom": self.bedroom,
            "bath": self.bath,
            "sqft": self.sqft,
            "price": self.price,
            "available_start": _format_date(self.available_start),
            "available_end": _format_date(self.available_end),
            "signature": self.signature,
            "captured_at": self.captured_at.isoformat() if self.captured_at else "",
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListingRecord":
        captured_at = data.get("captured_at")
        return cls(
            unit_id=data["unit_id"],
            url=data.get("url", ""),
            bedroom=data.get("bedroom", ""),
            bath=data.get("bath", ""),
            sqft=int(data.get("sqft") or 0),
            price=int(data.get("price") or 0),
            available_start=_parse_date(data.get("available_start")),
            available_end=_parse_date(data.get("available_end")),
            signature=data.get("signature", ""),
            captured_at=dt.datetime.fromisoformat(captured_at) if captured_at else None,
        )


AlertState = Dict[str, ListingRecord]


@dataclass(frozen=True)
class MoveWindow:
    """Desired move-in range, both ends inclusive."""

    start: dt.date
    end: dt.date


@dataclass
class AlertResult:
    """Holds the outcome of comparing a scrape against the stored alert state."""

    new: List[ListingRecord] = field(default_factory=list)
    existing: List[ListingRecord] = field(default_factory=list)
    deprecated: List[ListingRecord] = field(default_factory=list)
    state: AlertState = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.deprecated)
