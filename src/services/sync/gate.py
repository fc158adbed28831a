"""Write a Notion patch only for fields that actually changed."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from core.http import envelope_ok
from integrations.notion.properties import PropertyKind, parse_property, round_hours

__all__ = [
    "Proposed",
    "WriteOutcome",
    "WriteResult",
    "dates_equal",
    "diff_fields",
    "write_if_changed",
]


class WriteOutcome(str, Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Proposed:
    """``kind`` is one of number, date, text, select, relation."""

    kind: str
    value: Any


@dataclass
class WriteResult:
    outcome: WriteOutcome
    patch: Dict[str, Any] = field(default_factory=dict)
    response: Optional[Dict[str, Any]] = None


def _parse_dt(value: str) -> Optional[datetime]:
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def dates_equal(a: Any, b: Any) -> bool:
    """ISO-8601 equality; instants compared when both sides parse."""
    left = str(a or "").strip()
    right = str(b or "").strip()
    if not left or not right:
        return left == right
    ldt, rdt = _parse_dt(left), _parse_dt(right)
    if ldt is not None and rdt is not None:
        # a bare date never equals a datetime with a time part
        if (len(left) <= 10) != (len(right) <= 10):
            return False
        return ldt == rdt
    return left == right


def _current(raw: Any) -> Any:
    value = parse_property(raw)
    if value is None:
        return None
    if value.kind is PropertyKind.DATE:
        return value.value[0]
    return value.value


def _same(prop: Proposed, raw_current: Any) -> bool:
    current = _current(raw_current)
    if prop.kind == "number":
        return round_hours(prop.value) == round_hours(current)
    if prop.kind == "date":
        return dates_equal(prop.value, current)
    if prop.kind == "relation":
        return set(prop.value or ()) == set(current or ())
    return str(prop.value or "") == str(current or "")


def _payload(prop: Proposed) -> Dict[str, Any]:
    if prop.kind == "number":
        return {"number": round_hours(prop.value)}
    if prop.kind == "date":
        return {"date": {"start": prop.value}}
    if prop.kind == "select":
        return {"select": {"name": prop.value} if prop.value else None}
    if prop.kind == "relation":
        return {"relation": [{"id": pid} for pid in prop.value or ()]}
    return {"rich_text": [{"type": "text", "text": {"content": str(prop.value or "")}}]}


def diff_fields(proposed: Mapping[str, Proposed], current: Mapping[str, Any]) -> Dict[str, Any]:
    patch: Dict[str, Any] = {}
    for name, prop in proposed.items():
        if prop.value is None:
            continue
        if prop.kind == "number" and round_hours(prop.value) is None:
            print(f"[sync] ignoring non-numeric value for '{name}': {prop.value!r}")
            continue
        if _same(prop, (current or {}).get(name)):
            continue
        patch[name] = _payload(prop)
    return patch


def write_if_changed(
    target_id: str,
    proposed: Mapping[str, Proposed],
    current: Mapping[str, Any],
    send: Callable[[str, Dict[str, Any]], Dict[str, Any]],
) -> WriteResult:
    """Diff ``proposed`` against ``current`` and send only what differs.

    No call is made for an empty patch. UPDATED needs the remote success
    envelope; any other response is FAILED and is not retried here.
    """
    patch = diff_fields(proposed, current)
    if not patch:
        print(f"[sync] no changes for {target_id}; skip")
        return WriteResult(WriteOutcome.SKIPPED)
    response = send(target_id, patch)
    if envelope_ok(response):
        print(f"[sync] updated {target_id} fields={','.join(patch)}")
        return WriteResult(WriteOutcome.UPDATED, patch, response)
    code = response.get("code") or response.get("error") if isinstance(response, dict) else None
    print(f"[sync] update failed {target_id}: {code}")
    return WriteResult(WriteOutcome.FAILED, patch, response if isinstance(response, dict) else None)
