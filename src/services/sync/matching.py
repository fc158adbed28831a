"""Join-key matching and additive link decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

__all__ = [
    "Action",
    "Decision",
    "build_index",
    "missing_members",
    "normalize_key",
    "reconcile",
]


def normalize_key(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


class Action(str, Enum):
    LINK = "link"
    NOOP = "noop"
    SKIP = "skip"


@dataclass
class Decision:
    source_id: str
    key: str
    action: Action
    links: Tuple[str, ...] = ()
    added: Tuple[str, ...] = field(default=())


def build_index(
    records: Iterable[Dict[str, Any]],
    key_fn: Callable[[Dict[str, Any]], Any],
) -> Dict[str, List[str]]:
    """key -> every record id sharing it, in fetch order."""
    index: Dict[str, List[str]] = {}
    for rec in records:
        key = normalize_key(key_fn(rec))
        rid = rec.get("id")
        if not key or not rid:
            continue
        ids = index.setdefault(key, [])
        if rid not in ids:
            ids.append(rid)
    return index


def missing_members(existing: Iterable[str], wanted: Iterable[str]) -> List[str]:
    """``wanted`` ids not in ``existing``, de-duplicated, order kept."""
    have = set(existing)
    out: List[str] = []
    for item in wanted:
        if item and item not in have and item not in out:
            out.append(item)
    return out


def reconcile(
    sources: Sequence[Dict[str, Any]],
    index: Dict[str, List[str]],
    key_fn: Callable[[Dict[str, Any]], Any],
    links_fn: Callable[[Dict[str, Any]], Iterable[str]],
) -> List[Decision]:
    """One decision per source record.

    LINK carries current links plus every matched id; links are only ever
    added, never removed.
    """
    decisions: List[Decision] = []
    for rec in sources:
        sid = str(rec.get("id") or "")
        key = normalize_key(key_fn(rec))
        if not key:
            decisions.append(Decision(sid, key, Action.SKIP))
            continue
        matched = index.get(key)
        if not matched:
            decisions.append(Decision(sid, key, Action.NOOP))
            continue
        current = list(links_fn(rec))
        added = missing_members(current, matched)
        if not added:
            decisions.append(Decision(sid, key, Action.NOOP, tuple(current)))
            continue
        decisions.append(Decision(sid, key, Action.LINK, tuple(current + added), tuple(added)))
    return decisions
