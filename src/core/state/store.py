from __future__ import annotations
import json
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Set

from core.errors import RunLockedError

DATA_DIR = Path("data")
STATE_FILE = DATA_DIR / "state.json"

DEFAULT_LAST_RUN = datetime(2000, 1, 1, tzinfo=timezone.utc)
NOTIFIED_KEY = "notified_team_ids"


def configure(state_dir: str) -> None:
    """Point the store at ``state_dir`` (from Config.state_dir)."""
    global DATA_DIR, STATE_FILE
    DATA_DIR = Path(state_dir)
    STATE_FILE = DATA_DIR / "state.json"


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def load_state() -> Dict[str, Any]:
    ensure_dirs()
    if STATE_FILE.exists():
        try:
            with STATE_FILE.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            print(f"[state] unreadable state file {STATE_FILE}: {exc}; starting empty")
            return {}
        return data if isinstance(data, dict) else {}
    return {}


def save_state(state: Dict[str, Any]) -> None:
    ensure_dirs()
    tmp = STATE_FILE.with_suffix(".json.tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(state, f, ensure_ascii=False, indent=2)
    tmp.replace(STATE_FILE)


# --- last run watermark ----------------------------------------------------
def get_last_run_time() -> datetime:
    raw = load_state().get("last_run_time")
    if not raw:
        return DEFAULT_LAST_RUN
    try:
        dt = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return DEFAULT_LAST_RUN
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def set_last_run_time(ts: datetime) -> None:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    state = load_state()
    state["last_run_time"] = ts.isoformat()
    save_state(state)


# --- notified team ids -----------------------------------------------------
def _clean_ids(ids: Iterable[Any]) -> Set[str]:
    return {str(raw).strip() for raw in ids if raw is not None and str(raw).strip()}


def get_notified_team_ids() -> Set[str]:
    raw = load_state().get(NOTIFIED_KEY) or []
    return _clean_ids(raw if isinstance(raw, list) else [raw])


def set_notified_team_ids(ids: Iterable[str]) -> None:
    state = load_state()
    team_ids = sorted(_clean_ids(ids))
    state.pop(NOTIFIED_KEY, None)
    if team_ids:
        state[NOTIFIED_KEY] = team_ids
    save_state(state)


def add_notified_team_ids(ids: Iterable[str]) -> None:
    """Merge ``ids`` into the persisted set; writes only when something is new."""
    known = get_notified_team_ids()
    merged = known | _clean_ids(ids)
    if merged != known:
        set_notified_team_ids(merged)


# --- run lock --------------------------------------------------------------
def lock_path(job: str) -> Path:
    return DATA_DIR / f"{job}.lock"


@contextmanager
def run_lock(job: str, *, stale_after: Optional[float] = 1800) -> Iterator[Path]:
    """Hold an exclusive lock file for ``job`` for the duration of the block.

    Raises RunLockedError when another live run holds it. A lock file older
    than ``stale_after`` seconds is taken over.
    """
    ensure_dirs()
    path = lock_path(job)
    if path.exists() and stale_after is not None:
        try:
            age = time.time() - path.stat().st_mtime
        except OSError:
            age = 0.0
        if age > stale_after:
            print(f"[state] removing stale lock {path} age={age:.0f}s")
            path.unlink(missing_ok=True)
    try:
        fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        raise RunLockedError(job, str(path)) from None
    try:
        os.write(fd, str(os.getpid()).encode("ascii"))
    finally:
        os.close(fd)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
