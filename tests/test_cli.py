import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from app import cli  # type: ignore  # noqa: E402
from core.config import JOB_REQUIREMENTS, load_config  # type: ignore  # noqa: E402
from core.errors import ConfigError  # type: ignore  # noqa: E402
from services.sync.results import JobResult  # type: ignore  # noqa: E402

TRACKER_KEYS = JOB_REQUIREMENTS["time-tracker"]


def test_check_config_ok_for_a_configured_job(monkeypatch, capsys):
    for key in TRACKER_KEYS:
        monkeypatch.setenv(key, "x")
    assert cli.main(["check-config", "--job", "time-tracker"]) == 0
    assert "[config] time-tracker: ok" in capsys.readouterr().out


def test_check_config_reports_missing_keys(monkeypatch, capsys):
    for key in TRACKER_KEYS:
        monkeypatch.delenv(key, raising=False)
    assert cli.main(["check-config", "--job", "time-tracker"]) == 2
    out = capsys.readouterr().out
    assert "missing GOOGLE_SERVICE_ACCOUNT_FILE" in out


def test_unknown_job_is_rejected():
    with pytest.raises(SystemExit):
        cli.parse_args(["nope"])


def test_job_exit_codes(monkeypatch):
    def missing_config(cfg):
        raise ConfigError("link-people", ["NOTION_API_KEY"])

    monkeypatch.setitem(cli.JOBS, "link-people", missing_config)
    monkeypatch.setitem(cli.JOBS, "time-tracker", lambda cfg: JobResult(job="time-tracker", failed=1))
    monkeypatch.setitem(cli.JOBS, "teams-to-sheet", lambda cfg: JobResult(job="teams-to-sheet", updated=4))
    assert cli.main(["link-people"]) == 2
    assert cli.main(["time-tracker"]) == 1
    assert cli.main(["teams-to-sheet"]) == 0


def test_env_overrides_are_parsed(monkeypatch):
    monkeypatch.setenv("HTTP_MAX_RETRIES", "5")
    monkeypatch.setenv("GROUP_CREATE_PAUSE", "not-a-number")
    monkeypatch.setenv("SILENCE_TEAMS_WITHOUT_SCRUM", "yes")
    cfg = load_config()
    assert cfg.http_max_retries == 5
    assert cfg.group_create_pause == 2.0
    assert cfg.silence_teams_without_scrum is True
    assert cfg.sheet("TIMETRACKER")[1] == "All Recap - Current and Archived"
