"""Typed view over Notion page properties and their display strings.

Notion hands back every property as ``{"type": <tag>, <tag>: <payload>}``.
``parse_property`` turns that into a :class:`TypedValue` with a closed
:class:`PropertyKind`; ``display_value`` renders it as the string written to
sheets and compared by the jobs. Neither function raises on odd input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

__all__ = [
    "NO_TITLE",
    "TITLE_ERROR",
    "PropertyKind",
    "TypedValue",
    "display_value",
    "extract_page_id",
    "format_date",
    "format_number",
    "page_title",
    "page_url",
    "parse_property",
    "property_display",
    "property_primitive",
    "relation_ids",
    "relation_truncated",
    "round_hours",
]

NO_TITLE = "[No Title]"
TITLE_ERROR = "[Error Fetching Title]"

_PAGE_ID_RE = re.compile(r"([0-9a-fA-F]{32})(?:[?#].*)?$")
_DASHED_ID_RE = re.compile(r"([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})(?:[?#].*)?$")


class PropertyKind(str, Enum):
    TITLE = "title"
    RICH_TEXT = "rich_text"
    NUMBER = "number"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    EMAIL = "email"
    DATE = "date"
    CREATED_TIME = "created_time"
    STATUS = "status"
    RELATION = "relation"
    FORMULA = "formula"
    CHECKBOX = "checkbox"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TypedValue:
    """One parsed property.

    ``value`` carries the payload for ``kind``:
    text kinds hold ``str``, NUMBER ``int | float``, MULTI_SELECT and RELATION
    a tuple of names / page ids, DATE a ``(start, end)`` tuple, FORMULA and
    CHECKBOX the scalar result, UNKNOWN the unrecognised tag.
    """

    kind: PropertyKind
    value: Any = None


def _plain_text(segments: Any, sep: str = "") -> str:
    if not isinstance(segments, list):
        return ""
    parts: List[str] = []
    for seg in segments:
        if isinstance(seg, dict):
            text = seg.get("plain_text")
            if text is None:
                text = (seg.get("text") or {}).get("content")
            if text:
                parts.append(str(text))
    return sep.join(parts)


def _option_name(option: Any) -> Optional[str]:
    if isinstance(option, dict):
        name = option.get("name")
        return str(name) if name is not None else None
    return None


def _parse_formula(payload: Any) -> Any:
    if not isinstance(payload, dict):
        return None
    ftype = payload.get("type")
    if ftype == "date":
        inner = payload.get("date") or {}
        return inner.get("start") if isinstance(inner, dict) else None
    return payload.get(ftype) if ftype else None


def parse_property(raw: Any) -> Optional[TypedValue]:
    """Return the typed value of a raw Notion property, or None when absent."""
    if not isinstance(raw, dict):
        return None
    tag = raw.get("type")
    if not tag:
        return None
    try:
        kind = PropertyKind(tag)
    except ValueError:
        return TypedValue(PropertyKind.UNKNOWN, str(tag))
    if kind is PropertyKind.UNKNOWN:
        return TypedValue(PropertyKind.UNKNOWN, str(tag))
    payload = raw.get(tag)

    if kind is PropertyKind.TITLE:
        return TypedValue(kind, _plain_text(payload))
    if kind is PropertyKind.RICH_TEXT:
        return TypedValue(kind, _plain_text(payload, "\n"))
    if kind is PropertyKind.NUMBER:
        return TypedValue(kind, payload if isinstance(payload, (int, float)) and not isinstance(payload, bool) else None)
    if kind in (PropertyKind.SELECT, PropertyKind.STATUS):
        return TypedValue(kind, _option_name(payload))
    if kind is PropertyKind.MULTI_SELECT:
        names = [_option_name(o) for o in payload or []] if isinstance(payload, list) else []
        return TypedValue(kind, tuple(n for n in names if n))
    if kind is PropertyKind.EMAIL:
        return TypedValue(kind, str(payload) if payload else None)
    if kind is PropertyKind.DATE:
        if not isinstance(payload, dict):
            return TypedValue(kind, (None, None))
        return TypedValue(kind, (payload.get("start"), payload.get("end")))
    if kind is PropertyKind.CREATED_TIME:
        return TypedValue(kind, str(payload) if payload else None)
    if kind is PropertyKind.RELATION:
        ids = [r.get("id") for r in payload or [] if isinstance(r, dict)] if isinstance(payload, list) else []
        return TypedValue(kind, tuple(str(i) for i in ids if i))
    if kind is PropertyKind.FORMULA:
        return TypedValue(kind, _parse_formula(payload))
    if kind is PropertyKind.CHECKBOX:
        return TypedValue(kind, bool(payload) if payload is not None else None)
    return TypedValue(PropertyKind.UNKNOWN, str(tag))


def _parse_iso(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        d = date.fromisoformat(text[:10])
    except ValueError:
        return None
    return datetime(d.year, d.month, d.day)


def format_date(value: Any) -> str:
    """ISO date/datetime -> ``January 5, 2024``; unparsable input passes through."""
    if not value:
        return ""
    dt = _parse_iso(str(value))
    if dt is None:
        return str(value)
    return f"{dt.strftime('%B')} {dt.day}, {dt.year}"


def format_number(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def _bool_text(value: Any) -> str:
    if value is None:
        return ""
    return "true" if value else "false"


def display_value(
    value: Optional[TypedValue],
    resolve_title: Optional[Callable[[str], str]] = None,
    *,
    name: str = "",
) -> str:
    """Render ``value`` the way it appears in a sheet cell.

    Total: absent properties, empty payloads and unknown kinds all give "".
    Relations need ``resolve_title``; without it the raw page ids are joined.
    """
    if value is None:
        return ""
    kind = value.kind
    payload = value.value
    if kind in (
        PropertyKind.TITLE,
        PropertyKind.RICH_TEXT,
        PropertyKind.SELECT,
        PropertyKind.STATUS,
        PropertyKind.EMAIL,
    ):
        return str(payload) if payload else ""
    if kind is PropertyKind.NUMBER:
        return format_number(payload)
    if kind is PropertyKind.MULTI_SELECT:
        return ", ".join(payload or ())
    if kind is PropertyKind.DATE:
        start, end = payload if isinstance(payload, tuple) else (None, None)
        if start and end:
            return f"{format_date(start)} → {format_date(end)}"
        return format_date(start) if start else ""
    if kind is PropertyKind.CREATED_TIME:
        if not payload:
            return ""
        dt = _parse_iso(str(payload))
        return dt.date().isoformat() if dt else str(payload)[:10]
    if kind is PropertyKind.RELATION:
        ids = payload or ()
        if resolve_title is None:
            return ", ".join(ids)
        return ", ".join(resolve_title(pid) for pid in ids)
    if kind is PropertyKind.FORMULA:
        if isinstance(payload, bool):
            return _bool_text(payload)
        if isinstance(payload, (int, float)):
            return format_number(payload)
        return str(payload) if payload else ""
    if kind is PropertyKind.CHECKBOX:
        return _bool_text(payload)
    label = f" '{name}'" if name else ""
    print(f"[notion] unhandled property type{label}: {payload}")
    return ""


def property_display(
    properties: Dict[str, Any],
    name: str,
    resolve_title: Optional[Callable[[str], str]] = None,
) -> str:
    raw = (properties or {}).get(name)
    if raw is None:
        print(f"[notion] property '{name}' is missing")
        return ""
    return display_value(parse_property(raw), resolve_title, name=name)


def property_primitive(properties: Dict[str, Any], name: str) -> Any:
    """Raw scalar used in job logic: date start, checkbox bool, number, text."""
    value = parse_property((properties or {}).get(name))
    if value is None:
        return ""
    if value.kind is PropertyKind.DATE:
        return value.value[0] or ""
    if value.kind is PropertyKind.CHECKBOX:
        return bool(value.value)
    if value.kind is PropertyKind.NUMBER:
        return "" if value.value is None else value.value
    if value.kind is PropertyKind.RICH_TEXT:
        return str(value.value or "").replace("\n", "")
    if value.kind in (PropertyKind.RELATION, PropertyKind.MULTI_SELECT, PropertyKind.UNKNOWN):
        return ""
    return value.value if value.value is not None else ""


def relation_ids(properties: Dict[str, Any], name: str) -> Tuple[str, ...]:
    value = parse_property((properties or {}).get(name))
    if value is None or value.kind is not PropertyKind.RELATION:
        return ()
    return value.value


def relation_truncated(properties: Dict[str, Any], name: str) -> bool:
    """True when Notion cut the relation short (it inlines at most 25 ids)."""
    raw = (properties or {}).get(name)
    return isinstance(raw, dict) and raw.get("type") == "relation" and bool(raw.get("has_more"))


def page_title(page: Any) -> str:
    """First title property of a page; NO_TITLE when there is none."""
    props = page.get("properties") if isinstance(page, dict) else None
    if not isinstance(props, dict):
        return NO_TITLE
    for raw in props.values():
        if isinstance(raw, dict) and raw.get("type") == "title":
            return _plain_text(raw.get("title")) or NO_TITLE
    return NO_TITLE


def round_hours(value: Any) -> Optional[float]:
    """Round to one decimal, half away from zero; None for blanks/garbage."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        dec = Decimal(text)
    except InvalidOperation:
        return None
    if not dec.is_finite():
        return None
    return float(dec.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def page_url(page_id: str) -> str:
    return f"https://www.notion.so/{str(page_id).replace('-', '')}"


def extract_page_id(url: Any) -> Optional[str]:
    """Page id (32 hex chars, no dashes) from a Notion page URL or id."""
    text = str(url or "").strip()
    if not text:
        return None
    m = _PAGE_ID_RE.search(text)
    if m:
        return m.group(1).lower()
    m = _DASHED_ID_RE.search(text)
    if m:
        return m.group(1).replace("-", "").lower()
    return None
