"""Exceptions that stop a job before it does any work."""

from __future__ import annotations

from typing import Iterable

__all__ = ["ConfigError", "RunLockedError"]


class ConfigError(RuntimeError):
    def __init__(self, job: str, missing: Iterable[str]) -> None:
        self.job = job
        self.missing = list(missing)
        super().__init__(f"{job}: missing configuration {', '.join(self.missing)}")


class RunLockedError(RuntimeError):
    def __init__(self, job: str, lock_path: str) -> None:
        self.job = job
        self.lock_path = lock_path
        super().__init__(f"{job}: another run holds {lock_path}")
