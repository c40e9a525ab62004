"""Date helpers for MediaWiki requests."""
from __future__ import annotations

from datetime import date, datetime, timezone

MW_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def get_current_date(today: date | None = None) -> str:
    """Return the date used by ``Template:Potd/<date>`` pages, e.g. ``2024-05-01``."""
    today = today or datetime.now(timezone.utc).date()
    return today.strftime("%Y-%m-%d")


def format_mw_date(value: datetime) -> str:
    """Format ``value`` as a MediaWiki API timestamp in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(MW_DATE_FORMAT)


def parse_mw_date(value: str) -> datetime:
    return datetime.strptime(value, MW_DATE_FORMAT).replace(tzinfo=timezone.utc)


__all__ = ["MW_DATE_FORMAT", "get_current_date", "format_mw_date", "parse_mw_date"]
