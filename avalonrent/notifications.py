"""Notification helpers for delivering alert results by email."""

from __future__ import annotations

import html
import logging
import os
import smtplib
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Iterable, List, Protocol

from bs4 import BeautifulSoup

from .config import env_int
from .models import AlertResult, ListingRecord

logger = logging.getLogger(__name__)

ALERT_SUBJECT = "Avalon Apartment Alert"
SECTION_TITLES = ("New Results", "Deprecated Results", "Existing Results")


class Notifier(Protocol):
    """Protocol defining the notifier contract."""

    def send(self, subject: str, html_body: str) -> None:
        ...


@dataclass
class EmailNotifier:
    """Send HTML messages through an SMTP relay."""

    host: str
    recipients: List[str]
    port: int = 587
    user: str = ""
    password: str = field(default="", repr=False)
    from_email: str = ""
    use_tls: bool = True
    timeout: int = 30

    def send(self, subject: str, html_body: str) -> None:
        sender = self.from_email or self.user
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = ", ".join(self.recipients)
        msg.attach(MIMEText(html_to_text(html_body), "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(sender, self.recipients, msg.as_string())
        logger.info("Email %r sent to %s", subject, ", ".join(self.recipients))


def build_notifier_from_env() -> EmailNotifier | None:
    """Construct an email notifier from SMTP_* environment variables."""
    host = (os.getenv("SMTP_HOST") or "").strip()
    recipients = [
        address.strip()
        for address in (os.getenv("ALERT_RECIPIENT") or "").split(",")
        if address.strip()
    ]
    if not host or not recipients:
        return None
    return EmailNotifier(
        host=host,
        recipients=recipients,
        port=env_int(os.environ, "SMTP_PORT", 587),
        user=os.getenv("SMTP_USER", ""),
        password=os.getenv("SMTP_PASSWORD", ""),
        from_email=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        use_tls=os.getenv("SMTP_TLS", "true").lower() in ("true", "1"),
    )


def format_alert_email(result: AlertResult) -> str:
    """Render the new, deprecated, and existing sections as HTML."""
    sections = (result.new, result.deprecated, result.existing)
    lines: List[str] = []
    for title, records in zip(SECTION_TITLES, sections):
        lines.append(f"<h1>{title}</h1>")
        lines.extend(_format_entries(records))
    return "\n".join(lines) + "\n"


def format_error_email(exc: BaseException) -> str:
    return (
        f"<h1>{html.escape(type(exc).__name__)}</h1>\n"
        f"<p>{html.escape(str(exc))}</p>\n"
    )


def format_entry(record: ListingRecord) -> str:
    start = _short_date(record.available_start)
    end = _short_date(record.available_end)
    text = f"{record.unit_id}, {record.bedroom}, ${record.price}, {start} - {end}"
    return (
        f'<p><a href="{html.escape(record.url, quote=True)}">'
        f"{html.escape(text)}</a></p>"
    )


def _format_entries(records: Iterable[ListingRecord]) -> List[str]:
    return [format_entry(record) for record in records]


def _short_date(value) -> str:
    if value is None:
        return "?"
    return f"{value.strftime('%b')} {value.day}"


def html_to_text(body: str) -> str:
    """Plain-text fallback for mail clients without HTML support."""
    soup = BeautifulSoup(body, "html.parser")
    lines: List[str] = []
    for node in soup.find_all(["h1", "p"]):
        text = node.get_text().strip()
        lines.append(f"\n{text}:" if node.name == "h1" else text)
    return "\n".join(lines).strip() + "\n"


__all__ = [
    "ALERT_SUBJECT",
    "EmailNotifier",
    "Notifier",
    "build_notifier_from_env",
    "format_alert_email",
    "format_entry",
    "format_error_email",
    "html_to_text",
]
