from __future__ import annotations
import argparse
import sys
from typing import List, Optional, Sequence

from core.config import JOB_REQUIREMENTS, load_config, validate_config
from core.errors import ConfigError
from services.sync import JOBS, JobResult, run_all


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Notion / Slack / Google Sheets directory sync")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("people-to-sheet", help="Notion People Directory -> Mandates sheet")
    sub.add_parser("teams-to-sheet", help="Notion Team Directory -> Team Directory sheet")
    sub.add_parser("sheet-to-notion", help="Mandates sheet hours -> People Directory pages")
    sub.add_parser("sheet-to-slack", help="Mandates sheet -> Slack custom profile fields")
    sub.add_parser("slack-groups", help="Mandates sheet teams -> Slack user groups (add-only)")
    sub.add_parser("link-people", help="Link People Directory pages to internal people by email")
    sub.add_parser("notify-scrum", help="DM scrum masters of teams marked completed")
    sub.add_parser("time-tracker", help="Time tracker recap -> Mandates sheet columns N..Q")
    sub.add_parser("run-all", help="Run every job in order")

    p_check = sub.add_parser("check-config", help="List missing settings per job and exit")
    p_check.add_argument("--job", default=None, choices=sorted(JOB_REQUIREMENTS), help="Only check this job")
    return parser.parse_args(argv)


def _exit_code(results: List[JobResult]) -> int:
    return 1 if any(r.aborted or r.failed for r in results) else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    cfg = load_config()
    if args.cmd == "check-config":
        jobs = [args.job] if args.job else list(JOB_REQUIREMENTS)
        missing_any = False
        for job in jobs:
            missing = validate_config(cfg, job)
            missing_any = missing_any or bool(missing)
            print(f"[config] {job}: {'ok' if not missing else 'missing ' + ', '.join(missing)}")
        return 2 if missing_any else 0
    if args.cmd == "run-all":
        results = run_all(cfg)
        for res in results:
            print(f"[sync] {res.job}: updated={res.updated} failed={res.failed} aborted={res.aborted}")
        return _exit_code(results)
    runner = JOBS[args.cmd]
    try:
        result = runner(cfg)
    except ConfigError as exc:
        print(f"[config] {exc}")
        return 2
    return _exit_code([result])


if __name__ == "__main__":
    sys.exit(main())
