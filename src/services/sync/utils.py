"""Utility helpers shared across sync flows."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

__all__ = [
    "format_sheet_datetime",
    "parse_custom_date",
    "resolve_tz",
    "sheet_date_to_iso",
]

# Day zero of spreadsheet date serials
_SERIAL_EPOCH = datetime(1899, 12, 30)

# Sheet timestamps look like "05/01/2024 10:00:00" (day first)
_DMY_RE = re.compile(
    r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})(?:[ T]+(\d{1,2}):(\d{2})(?::(\d{2}))?)?\s*$"
)


def resolve_tz(name: Optional[str]) -> Any:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        print(f"[sync] unknown timezone {name!r}; using UTC")
        return timezone.utc


def parse_custom_date(value: Any, tz: Any = timezone.utc) -> Optional[datetime]:
    """``DD/MM/YYYY[ HH:MM[:SS]]`` or ISO-8601 -> aware datetime; None otherwise."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    text = str(value).strip()
    if not text:
        return None
    m = _DMY_RE.match(text)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        hour = int(m.group(4) or 0)
        minute = int(m.group(5) or 0)
        second = int(m.group(6) or 0)
        try:
            return datetime(year, month, day, hour, minute, second, tzinfo=tz)
        except ValueError:
            return None
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=tz)


def sheet_date_to_iso(value: Any, tz: Any = timezone.utc) -> Optional[str]:
    dt = parse_custom_date(value, tz)
    return dt.isoformat() if dt else None


def format_sheet_datetime(value: Any) -> str:
    """Date serial from an unformatted read -> ``DD/MM/YYYY HH:MM:SS``.

    Text is returned unchanged and blanks give "".
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        days = int(value)
        seconds = round((value - days) * 86400)
        dt = _SERIAL_EPOCH + timedelta(days=days, seconds=seconds)
        return dt.strftime("%d/%m/%Y %H:%M:%S")
    return str(value)
