"""Record -> sheet row projection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from integrations.notion.properties import TITLE_ERROR, property_display

__all__ = ["Column", "TitleResolver", "project_row"]


@dataclass(frozen=True)
class Column:
    """One output column: a property lookup, or ``compute(record)`` when given."""

    header: str
    prop: Optional[str] = None
    compute: Optional[Callable[[Dict[str, Any]], str]] = None

    @property
    def source(self) -> str:
        return self.prop or self.header


class TitleResolver:
    """Per-run memo of related page titles."""

    def __init__(self, fetch_title: Callable[[str], str]) -> None:
        self._fetch = fetch_title
        self._cache: Dict[str, str] = {}
        self.lookups = 0

    def __call__(self, page_id: str) -> str:
        if page_id in self._cache:
            return self._cache[page_id]
        self.lookups += 1
        try:
            title = self._fetch(page_id)
        except Exception as exc:
            print(f"[notion] title lookup raised page={page_id}: {exc}")
            title = TITLE_ERROR
        self._cache[page_id] = title
        return title


def project_row(
    record: Dict[str, Any],
    schema: Sequence[Column],
    resolve_title: Optional[Callable[[str], str]] = None,
) -> List[str]:
    properties = record.get("properties") or {}
    row: List[str] = []
    for col in schema:
        if col.compute is not None:
            row.append(col.compute(record))
        else:
            row.append(property_display(properties, col.source, resolve_title))
    return row
