import json
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from core.errors import RunLockedError  # type: ignore  # noqa: E402
from core.state import store  # type: ignore  # noqa: E402


@pytest.fixture()
def state_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(store, "DATA_DIR", tmp_path)
    monkeypatch.setattr(store, "STATE_FILE", tmp_path / "state.json")
    return tmp_path


def test_last_run_defaults_and_round_trips(state_dir):
    assert store.get_last_run_time() == datetime(2000, 1, 1, tzinfo=timezone.utc)
    ts = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    store.set_last_run_time(ts)
    assert store.get_last_run_time() == ts
    data = json.loads((state_dir / "state.json").read_text(encoding="utf-8"))
    assert data["last_run_time"] == "2024-05-01T12:30:00+00:00"


def test_notified_team_ids_merge(state_dir):
    assert store.get_notified_team_ids() == set()
    store.add_notified_team_ids(["t1", " t2 ", None, ""])
    store.add_notified_team_ids(["t2", "t3"])
    assert store.get_notified_team_ids() == {"t1", "t2", "t3"}
    store.set_notified_team_ids([])
    assert "notified_team_ids" not in store.load_state()


def test_unreadable_state_starts_empty(state_dir, capsys):
    (state_dir / "state.json").write_text("{not json", encoding="utf-8")
    assert store.load_state() == {}
    assert "[state] unreadable state file" in capsys.readouterr().out


def test_keys_are_preserved_across_writers(state_dir):
    store.add_notified_team_ids(["t1"])
    store.set_last_run_time(datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert store.get_notified_team_ids() == {"t1"}


def test_run_lock_blocks_overlapping_run(state_dir):
    with store.run_lock("slack-groups") as path:
        assert path.exists()
        with pytest.raises(RunLockedError):
            with store.run_lock("slack-groups"):
                pass
        # other jobs are independent
        with store.run_lock("notify-scrum"):
            pass
    assert not (state_dir / "slack-groups.lock").exists()


def test_stale_lock_is_taken_over(state_dir):
    lock = state_dir / "link-people.lock"
    lock.write_text("999999", encoding="utf-8")
    old = time.time() - 7200
    os.utime(lock, (old, old))
    with store.run_lock("link-people", stale_after=1800):
        assert lock.exists()
    assert not lock.exists()


def test_configure_points_at_directory(tmp_path, monkeypatch):
    monkeypatch.setattr(store, "DATA_DIR", store.DATA_DIR)
    monkeypatch.setattr(store, "STATE_FILE", store.STATE_FILE)
    store.configure(str(tmp_path / "nested"))
    store.set_last_run_time(datetime(2024, 2, 2, tzinfo=timezone.utc))
    assert (tmp_path / "nested" / "state.json").exists()
