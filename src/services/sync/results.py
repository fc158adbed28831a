"""Structured results returned by sync routines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

__all__ = ["JobResult"]


@dataclass
class JobResult:
    job: str
    scanned: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    duration: float = 0.0
    complete: bool = True
    aborted: bool = False
    notes: List[str] = field(default_factory=list)
