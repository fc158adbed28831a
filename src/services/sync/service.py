from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from core.config import Config, validate_config
from core.errors import ConfigError, RunLockedError
from core.http import RetryingHttpClient, envelope_ok
from core.state import store
from integrations.notion import NotionWrapper
from integrations.notion.properties import (
    extract_page_id,
    page_url,
    property_display,
    property_primitive,
    relation_ids,
    relation_truncated,
)
from integrations.sheets import SheetTable, column_letter, headers_match, open_worksheet
from integrations.slack import PROFILE_FIELD_IDS, SlackClient
from notifications import Notifier, format_job_summary
from services.sync.fetcher import FetchResult, fetch_all
from services.sync.gate import Proposed, WriteOutcome, write_if_changed
from services.sync.matching import Action, build_index, missing_members, normalize_key, reconcile
from services.sync.projection import TitleResolver, project_row
from services.sync.results import JobResult
from services.sync.schemas import (
    COL_EMAIL,
    COL_HOURS_DECIMAL,
    COL_LAST_UPDATE,
    COL_NOTION_URL,
    COL_STATUS,
    COL_TEAM,
    EMAIL_PROP,
    HOURS_CURRENT_PROP,
    HOURS_LAST_UPDATE_PROP,
    INVALID_GROUP_STATUSES,
    MANDATES_COLUMNS,
    MANDATES_SHEET_HEADERS,
    PEOPLE_RELATION_PROP,
    SCRUM_MASTER_PROP,
    TEAM_DIRECTORY_COLUMNS,
    TEAM_NAME_PROP,
    TEAM_STATUS_PROP,
    TIME_TRACKER_HEADERS,
    TIME_TRACKER_START_COL,
)
from services.sync.utils import format_sheet_datetime, parse_custom_date, resolve_tz, sheet_date_to_iso

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

JobBody = Callable[[Config, JobResult, Notifier], None]


# --- collaborators -------------------------------------------------------
def _notion(cfg: Config) -> NotionWrapper:
    return NotionWrapper(
        cfg.notion_api_key or "",
        notion_version=cfg.notion_version,
        page_size=cfg.notion_page_size,
        max_retries=cfg.http_max_retries,
    )


def _slack(cfg: Config, token: Optional[str]) -> SlackClient:
    http = RetryingHttpClient(max_retries=cfg.http_max_retries, timeout=cfg.http_timeout)
    return SlackClient(token or "", http=http)


def _sheet(cfg: Config, key: str) -> SheetTable:
    sheet_id, name = cfg.sheet(key)
    return open_worksheet(cfg.google_service_account_file or "", sheet_id or "", name)


def _notifier(cfg: Config) -> Notifier:
    return Notifier(cfg.slack_bot_token, cfg.logging_channel_id)


def _fetch_database(notion: NotionWrapper, database_id: str, *, label: str, filter: Optional[Dict[str, Any]] = None) -> FetchResult:
    def _page(cursor: Optional[str]) -> Dict[str, Any]:
        return notion.query_database(database_id, start_cursor=cursor, filter=filter)

    return fetch_all(_page, label=label)


def _report_partial(fetched: FetchResult, label: str, result: JobResult, notifier: Notifier) -> None:
    if fetched.complete:
        return
    result.complete = False
    notifier.send(f":warning: {label} fetch stopped early ({fetched.error}); continuing with {len(fetched.records)} records")


def _run(cfg: Config, job: str, body: JobBody, notifier: Optional[Notifier] = None) -> JobResult:
    notifier = notifier or _notifier(cfg)
    missing = validate_config(cfg, job)
    if missing:
        notifier.send(f":rotating_light: *{job}* not started, missing configuration: {', '.join(missing)}")
        raise ConfigError(job, missing)
    store.configure(cfg.state_dir)
    result = JobResult(job=job)
    start_ts = time.perf_counter()
    try:
        with store.run_lock(job, stale_after=cfg.run_lock_stale_seconds):
            print(f"[sync] start | job={job}")
            notifier.send(f":loudspeaker: Starting *{job}*")
            body(cfg, result, notifier)
    except RunLockedError as exc:
        result.aborted = True
        result.notes.append(str(exc))
        notifier.send(f":warning: *{job}* skipped: {exc}")
        return result
    result.duration = time.perf_counter() - start_ts
    print(
        f"[sync] done | job={job} | scanned={result.scanned} | updated={result.updated} | "
        f"skipped={result.skipped} | failed={result.failed} | complete={result.complete}"
    )
    notifier.send(format_job_summary(result))
    return result


def _missing_columns(header: List[str], required: List[str]) -> List[str]:
    return [c for c in required if c not in header]


# --- people-to-sheet / teams-to-sheet ------------------------------------
def _export_database(
    cfg: Config,
    result: JobResult,
    notifier: Notifier,
    *,
    database_id: str,
    sheet_key: str,
    schema: List[Any],
    label: str,
) -> None:
    notion = _notion(cfg)
    fetched = _fetch_database(notion, database_id, label=label)
    _report_partial(fetched, label, result, notifier)
    result.scanned = len(fetched.records)
    if not fetched.records and not fetched.complete:
        result.aborted = True
        result.notes.append("nothing fetched; sheet left untouched")
        return
    resolver = TitleResolver(notion.fetch_page_title)
    rows = [project_row(page, schema, resolver) for page in fetched.records]
    print(f"[sync] {label}: projected {len(rows)} rows, {resolver.lookups} relation lookups")
    sheet = _sheet(cfg, sheet_key)
    result.updated = sheet.replace_rows([c.header for c in schema], rows)
    if not rows:
        result.notes.append(f"no rows found in {label}")


def _people_to_sheet(cfg: Config, result: JobResult, notifier: Notifier) -> None:
    _export_database(
        cfg,
        result,
        notifier,
        database_id=cfg.notion_people_db_id or "",
        sheet_key="MANDATES",
        schema=MANDATES_COLUMNS,
        label="people directory",
    )


def _teams_to_sheet(cfg: Config, result: JobResult, notifier: Notifier) -> None:
    _export_database(
        cfg,
        result,
        notifier,
        database_id=cfg.notion_team_db_id or "",
        sheet_key="TEAMS",
        schema=TEAM_DIRECTORY_COLUMNS,
        label="team directory",
    )


# --- sheet-to-notion -----------------------------------------------------
def _sheet_to_notion(cfg: Config, result: JobResult, notifier: Notifier) -> None:
    sheet = _sheet(cfg, "MANDATES")
    header, rows = sheet.read_records()
    missing = _missing_columns(header, [COL_HOURS_DECIMAL, COL_LAST_UPDATE])
    if not headers_match(header, MANDATES_SHEET_HEADERS) or missing:
        result.aborted = True
        notifier.send(":warning: Header mismatch in Mandates sheet. Aborting sync.")
        return
    tz = resolve_tz(cfg.tz)
    notion = _notion(cfg)
    for row_no, row in enumerate(rows, start=2):
        result.scanned += 1
        hours = (row.get(COL_HOURS_DECIMAL) or "").strip()
        last_update = (row.get(COL_LAST_UPDATE) or "").strip()
        if not hours and not last_update:
            print(f"[sync] row {row_no}: hours and last update empty; skip")
            result.skipped += 1
            continue
        page_id = extract_page_id(row.get(COL_NOTION_URL))
        if not page_id:
            print(f"[sync] row {row_no}: Notion page id missing or invalid; skip")
            result.skipped += 1
            continue

        proposed: Dict[str, Proposed] = {}
        if hours:
            proposed[HOURS_CURRENT_PROP] = Proposed("number", hours)
        if last_update:
            iso = sheet_date_to_iso(last_update, tz)
            if iso:
                proposed[HOURS_LAST_UPDATE_PROP] = Proposed("date", iso)
            else:
                print(f"[sync] row {row_no}: unparsable Last Update {last_update!r}")

        page = notion.retrieve_page(page_id)
        if not envelope_ok(page):
            result.failed += 1
            notifier.send(f":x: Could not read Notion page {page_id}: {page.get('code')}")
            continue
        written = write_if_changed(page_id, proposed, page.get("properties") or {}, notion.update_page_properties)
        if written.outcome is WriteOutcome.UPDATED:
            result.updated += 1
        elif written.outcome is WriteOutcome.SKIPPED:
            result.skipped += 1
        else:
            result.failed += 1
            notifier.send(f":x: Failed to update Notion page {page_id}")


# --- sheet-to-slack ------------------------------------------------------
def _sheet_to_slack(cfg: Config, result: JobResult, notifier: Notifier) -> None:
    sheet = _sheet(cfg, "MANDATES")
    header, rows = sheet.read_records()
    missing = _missing_columns(header, [COL_EMAIL] + list(PROFILE_FIELD_IDS))
    if not headers_match(header, MANDATES_SHEET_HEADERS) or missing:
        result.aborted = True
        notifier.send(f":warning: Header mismatch in Mandates sheet (missing: {', '.join(missing) or 'none'}). Aborting sync.")
        return
    slack = _slack(cfg, cfg.slack_user_token)
    for row in rows:
        email = (row.get(COL_EMAIL) or "").strip()
        if not email:
            continue
        result.scanned += 1
        user_id = slack.lookup_user_id_by_email(email)
        if not user_id:
            result.skipped += 1
            continue
        values = {column: row.get(column, "") for column in PROFILE_FIELD_IDS}
        response = slack.set_profile_fields(user_id, values)
        if envelope_ok(response):
            result.updated += 1
        else:
            result.failed += 1
            notifier.send(f":x: Failed to update profile for user {user_id}: {response.get('error')}")


# --- slack-groups --------------------------------------------------------
def collect_groups(rows: List[Dict[str, str]], last_run: datetime, tz: Any, result: JobResult) -> Dict[str, List[str]]:
    """Team name -> member emails from Mandates rows changed since ``last_run``."""
    groups: Dict[str, List[str]] = {}
    for row in rows:
        email = (row.get(COL_EMAIL) or "").strip()
        status = (row.get(COL_STATUS) or "").strip()
        team_cell = row.get(COL_TEAM) or ""
        updated_at = parse_custom_date(row.get(COL_LAST_UPDATE), tz)
        if not email or not team_cell.strip():
            print(f"[sync] skipping row with missing data: {email or '<no email>'}")
            result.skipped += 1
            continue
        # rows without a readable Last Update are always due
        if updated_at is not None and updated_at < last_run:
            result.skipped += 1
            continue
        if status in INVALID_GROUP_STATUSES:
            print(f"[sync] skipping {email}: status {status}")
            result.skipped += 1
            continue
        for raw in team_cell.split(","):
            team = raw.strip()
            if not team or "admin" in team.lower():
                continue
            members = groups.setdefault(team, [])
            if email not in members:
                members.append(email)
    return groups


def _slack_groups(cfg: Config, result: JobResult, notifier: Notifier) -> None:
    run_started = datetime.now(timezone.utc)
    sheet = _sheet(cfg, "MANDATES")
    header, rows = sheet.read_records()
    missing = _missing_columns(header, [COL_EMAIL, COL_STATUS, COL_TEAM, COL_LAST_UPDATE])
    if missing:
        result.aborted = True
        notifier.send(f":warning: Mandates sheet is missing columns {', '.join(missing)}. Aborting group sync.")
        return
    last_run = store.get_last_run_time()
    groups = collect_groups(rows, last_run, resolve_tz(cfg.tz), result)
    print(f"[sync] {len(groups)} group(s) to reconcile since {last_run.isoformat()}")

    slack = _slack(cfg, cfg.slack_user_token)
    user_ids: Dict[str, Optional[str]] = {}
    for name, emails in groups.items():
        result.scanned += 1
        created = slack.create_usergroup(name)
        group_id = (created.get("usergroup") or {}).get("id") if envelope_ok(created) else None
        if not group_id:
            result.failed += 1
            notifier.send(f":x: Failed to find or create group '{name}': {created.get('error')}")
            continue
        if created.get("created") and cfg.group_create_pause > 0:
            time.sleep(cfg.group_create_pause)

        wanted: List[str] = []
        for email in emails:
            key = normalize_key(email)
            if key not in user_ids:
                user_ids[key] = slack.lookup_user_id_by_email(email)
            if user_ids[key]:
                wanted.append(user_ids[key])
            else:
                print(f"[slack] user not found for {email}")

        existing = slack.list_usergroup_members(group_id)
        if existing is None:
            result.failed += 1
            notifier.send(f":x: Could not list members of group '{name}'; left unchanged")
            continue
        if not missing_members(existing, wanted):
            print(f"[slack] all users already in '{name}'")
            result.skipped += 1
            continue
        ok, added = slack.add_users_to_usergroup(group_id, wanted, existing=existing)
        if ok:
            print(f"[slack] added {len(added)} user(s) to '{name}'")
            result.updated += 1
        else:
            result.failed += 1
            notifier.send(f":x: Failed to add users to group '{name}'")

    if result.failed:
        result.notes.append("watermark not advanced")
        return
    store.set_last_run_time(run_started)


# --- link-people ---------------------------------------------------------
def _email_key(page: Dict[str, Any]) -> Any:
    return property_primitive(page.get("properties") or {}, EMAIL_PROP)


def _people_links(page: Dict[str, Any]) -> List[str]:
    return list(relation_ids(page.get("properties") or {}, PEOPLE_RELATION_PROP))


def _complete_relation(notion: NotionWrapper, page: Dict[str, Any], prop: str) -> bool:
    """Load every id of a truncated relation into ``page``; False if that failed."""
    props = page.get("properties") or {}
    if not relation_truncated(props, prop):
        return True
    raw = props[prop]
    page_id = str(page.get("id") or "")
    property_id = str(raw.get("id") or prop)

    def _page(cursor: Optional[str]) -> Dict[str, Any]:
        return notion.retrieve_page_property(page_id, property_id, start_cursor=cursor)

    fetched = fetch_all(_page, label=f"{prop} of {page_id}")
    if not fetched.complete:
        return False
    ids = [str((item.get("relation") or {}).get("id")) for item in fetched.records if (item.get("relation") or {}).get("id")]
    props[prop] = {**raw, "relation": [{"id": i} for i in ids], "has_more": False}
    return True


def _link_people(cfg: Config, result: JobResult, notifier: Notifier) -> None:
    notion = _notion(cfg)
    people = _fetch_database(notion, cfg.notion_people_db_id or "", label="people directory")
    internal = _fetch_database(notion, cfg.notion_internal_people_db_id or "", label="internal people")
    _report_partial(people, "people directory", result, notifier)
    _report_partial(internal, "internal people", result, notifier)
    if not people.records or not internal.records:
        result.aborted = True
        notifier.send(":warning: Failed to fetch pages from one or both databases. Check the database ids.")
        return

    # a relation written back from a truncated list would drop the unseen links
    sources: List[Dict[str, Any]] = []
    for page in people.records:
        if _complete_relation(notion, page, PEOPLE_RELATION_PROP):
            sources.append(page)
            continue
        result.scanned += 1
        result.failed += 1
        notifier.send(f":x: Could not read every link of page {page.get('id')}; left unchanged")

    index = build_index(internal.records, _email_key)
    decisions = reconcile(sources, index, _email_key, _people_links)
    pages = {str(p.get("id")): p for p in sources}
    for decision in decisions:
        result.scanned += 1
        if decision.action is not Action.LINK:
            result.skipped += 1
            continue
        page = pages[decision.source_id]
        written = write_if_changed(
            decision.source_id,
            {PEOPLE_RELATION_PROP: Proposed("relation", decision.links)},
            page.get("properties") or {},
            notion.update_page_properties,
        )
        if written.outcome is WriteOutcome.UPDATED:
            result.updated += 1
        elif written.outcome is WriteOutcome.SKIPPED:
            result.skipped += 1
        else:
            result.failed += 1
            notifier.send(f":x: Failed to link page with email: {decision.key}")


# --- notify-scrum --------------------------------------------------------
def completion_message(user_id: str, team_name: str, team_id: str, status_value: str) -> str:
    link = page_url(team_id)
    return (
        f"Hi <@{user_id}>! The mandate for the team *{team_name}* has been marked as '{status_value}' in Notion. "
        "Please review the team's status and consider disabling the corresponding Slack user group if appropriate.\n"
        f"Team Page: <{link}|{team_name}>"
    )


def _notify_scrum(cfg: Config, result: JobResult, notifier: Notifier) -> None:
    if cfg.silence_teams_without_scrum:
        notifier.send(":warning: Notifications about teams without a scrum master are disabled (SILENCE_TEAMS_WITHOUT_SCRUM).")
    notified = store.get_notified_team_ids()
    status_filter = {"property": TEAM_STATUS_PROP, "status": {"equals": cfg.completed_status_value}}
    notion = _notion(cfg)
    fetched = _fetch_database(notion, cfg.notion_team_db_id or "", label="completed teams", filter=status_filter)
    _report_partial(fetched, "completed teams", result, notifier)
    slack = _slack(cfg, cfg.slack_bot_token)

    newly_notified: List[str] = []
    for team in fetched.records:
        result.scanned += 1
        team_id = str(team.get("id") or "")
        props = team.get("properties") or {}
        team_name = property_display(props, TEAM_NAME_PROP)
        if not team_name:
            print(f"[sync] team {team_id}: no name; skip")
            result.skipped += 1
            continue
        if team_id in notified:
            result.skipped += 1
            continue

        sm_ids = relation_ids(props, SCRUM_MASTER_PROP)
        if not sm_ids:
            if not cfg.silence_teams_without_scrum:
                notifier.send(f":warning: No Scrum Master for completed team *{team_name}* (`{team_id}`). Cannot notify.")
            result.skipped += 1
            continue
        sm_page_id = sm_ids[0]
        if len(sm_ids) > 1:
            notifier.send(f":warning: Multiple Scrum Masters for team *{team_name}*. Using first: `{sm_page_id}`.")

        sm_page = notion.retrieve_page(sm_page_id)
        email = str(property_primitive(sm_page.get("properties") or {}, EMAIL_PROP)) if envelope_ok(sm_page) else ""
        if not email or not _EMAIL_RE.match(email):
            notifier.send(
                f":warning: No valid email for Scrum Master `{sm_page_id}` of team *{team_name}* "
                f"(found: `{email or 'None'}`). Cannot notify."
            )
            result.failed += 1
            continue

        user_id = slack.lookup_user_id_by_email(email, purpose="scrum master")
        if not user_id:
            notifier.send(f":warning: No Slack user for `{email}` (team *{team_name}*). Cannot send DM.")
            result.failed += 1
            continue

        message = completion_message(user_id, team_name, team_id, cfg.completed_status_value)
        if slack.send_direct_message(user_id, message):
            result.updated += 1
            newly_notified.append(team_id)
            notifier.send(f":white_check_mark: Notified `{email}` for team *{team_name}*.")
        else:
            result.failed += 1
            notifier.send(f":x: Failed to notify `{email}` (Slack `{user_id}`) for team *{team_name}*.")

    if newly_notified:
        store.add_notified_team_ids(newly_notified)


# --- time-tracker --------------------------------------------------------
def _time_tracker(cfg: Config, result: JobResult, notifier: Notifier) -> None:
    recap = _sheet(cfg, "TIMETRACKER")
    target = _sheet(cfg, "MANDATES")
    first_col = column_letter(TIME_TRACKER_START_COL)
    last_col = column_letter(TIME_TRACKER_START_COL + len(TIME_TRACKER_HEADERS) - 1)
    target.write_block(f"{first_col}1:{last_col}1", [list(TIME_TRACKER_HEADERS)])

    recap_index: Dict[str, List[Any]] = {}
    for row in recap.read_range("A2:G", raw=True):
        cells = list(row) + [""] * (7 - len(row))
        name = normalize_key(cells[0])
        if name:
            # C: Error Detection, D: Last Update, E: Start Date, F: Hours (decimal)
            recap_index[name] = [
                cells[2],
                format_sheet_datetime(cells[3]),
                format_sheet_datetime(cells[4]),
                cells[5],
            ]

    block: List[List[Any]] = []
    for row in target.read_range("A2:A"):
        key = normalize_key(row[0] if row else "")
        result.scanned += 1
        hit = recap_index.get(key) if key else None
        if hit:
            result.updated += 1
            block.append(list(hit))
        else:
            result.skipped += 1
            block.append(["", "", "", ""])
    if block:
        target.write_block(f"{first_col}2:{last_col}{1 + len(block)}", block)


# --- entry points --------------------------------------------------------
def run_people_to_sheet(cfg: Config, notifier: Optional[Notifier] = None) -> JobResult:
    return _run(cfg, "people-to-sheet", _people_to_sheet, notifier)


def run_teams_to_sheet(cfg: Config, notifier: Optional[Notifier] = None) -> JobResult:
    return _run(cfg, "teams-to-sheet", _teams_to_sheet, notifier)


def run_sheet_to_notion(cfg: Config, notifier: Optional[Notifier] = None) -> JobResult:
    return _run(cfg, "sheet-to-notion", _sheet_to_notion, notifier)


def run_sheet_to_slack(cfg: Config, notifier: Optional[Notifier] = None) -> JobResult:
    return _run(cfg, "sheet-to-slack", _sheet_to_slack, notifier)


def run_slack_groups(cfg: Config, notifier: Optional[Notifier] = None) -> JobResult:
    return _run(cfg, "slack-groups", _slack_groups, notifier)


def run_link_people(cfg: Config, notifier: Optional[Notifier] = None) -> JobResult:
    return _run(cfg, "link-people", _link_people, notifier)


def run_notify_scrum(cfg: Config, notifier: Optional[Notifier] = None) -> JobResult:
    return _run(cfg, "notify-scrum", _notify_scrum, notifier)


def run_time_tracker(cfg: Config, notifier: Optional[Notifier] = None) -> JobResult:
    return _run(cfg, "time-tracker", _time_tracker, notifier)


JOBS: Dict[str, Callable[..., JobResult]] = {
    "people-to-sheet": run_people_to_sheet,
    "teams-to-sheet": run_teams_to_sheet,
    "time-tracker": run_time_tracker,
    "sheet-to-notion": run_sheet_to_notion,
    "sheet-to-slack": run_sheet_to_slack,
    "slack-groups": run_slack_groups,
    "link-people": run_link_people,
    "notify-scrum": run_notify_scrum,
}


def run_all(cfg: Config, notifier: Optional[Notifier] = None) -> List[JobResult]:
    """Run every job in order; one job failing does not stop the rest."""
    notifier = notifier or _notifier(cfg)
    results: List[JobResult] = []
    for job, runner in JOBS.items():
        try:
            results.append(runner(cfg, notifier))
        except ConfigError as exc:
            results.append(JobResult(job=job, aborted=True, notes=[str(exc)]))
        except Exception as exc:
            print(f"[sync] {job} crashed: {exc!r}")
            notifier.send(f":rotating_light: *{job}* failed: {exc}")
            results.append(JobResult(job=job, aborted=True, notes=[repr(exc)]))
    return results
