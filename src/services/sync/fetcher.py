"""Cursor-following collection fetch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

__all__ = ["FetchResult", "fetch_all"]


@dataclass
class FetchResult:
    records: List[Dict[str, Any]] = field(default_factory=list)
    complete: bool = True
    pages: int = 0
    error: Optional[str] = None


def fetch_all(
    query_page: Callable[[Optional[str]], Dict[str, Any]],
    *,
    label: str = "collection",
) -> FetchResult:
    """Follow ``next_cursor`` until ``has_more`` is false.

    ``query_page(cursor)`` returns one page dict (``cursor`` is None for the
    first). A page without a ``results`` list, a missing cursor while
    ``has_more`` is set, or a cursor already used all stop the loop; what was
    accumulated so far comes back with ``complete=False``.
    """
    out = FetchResult()
    cursor: Optional[str] = None
    used: Set[str] = set()
    while True:
        page = query_page(cursor)
        out.pages += 1
        results = page.get("results") if isinstance(page, dict) else None
        if not isinstance(results, list):
            detail = ""
            if isinstance(page, dict) and page.get("object") == "error":
                detail = f" {page.get('code')}: {page.get('message')}"
            out.error = f"page {out.pages} has no results{detail}"
            out.complete = False
            print(f"[fetch] {label} {out.error}; keeping {len(out.records)} records")
            return out
        out.records.extend(r for r in results if isinstance(r, dict))
        if not page.get("has_more"):
            break
        next_cursor = page.get("next_cursor")
        if not next_cursor:
            out.error = f"page {out.pages} has_more without next_cursor"
            out.complete = False
            print(f"[fetch] {label} {out.error}; stopping")
            return out
        if next_cursor in used:
            out.error = f"cursor {next_cursor} repeated"
            out.complete = False
            print(f"[fetch] {label} {out.error}; stopping")
            return out
        used.add(next_cursor)
        cursor = next_cursor
    print(f"[fetch] {label} pages={out.pages} records={len(out.records)}")
    return out
