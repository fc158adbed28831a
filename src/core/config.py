from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _flag(key: str, default: str = "0") -> bool:
    raw = os.getenv(key, default)
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Config:
    # Notion
    notion_api_key: Optional[str] = None
    notion_version: str = "2022-06-28"
    notion_page_size: int = 100
    notion_people_db_id: Optional[str] = None
    notion_internal_people_db_id: Optional[str] = None
    notion_team_db_id: Optional[str] = None

    # Slack: user token manages groups/profiles, bot token posts messages
    slack_bot_token: Optional[str] = None
    slack_user_token: Optional[str] = None
    logging_channel_id: Optional[str] = None

    # Google Sheets (service account)
    google_service_account_file: Optional[str] = None
    sheet_id_mandates: Optional[str] = None
    sheet_name_mandates: str = "Mandates"
    sheet_id_teams: Optional[str] = None
    sheet_name_teams: str = "Team Directory"
    sheet_id_timetracker: Optional[str] = None
    sheet_name_timetracker: str = "All Recap - Current and Archived"

    # HTTP behaviour
    http_max_retries: int = 3
    http_timeout: float = 20.0

    tz: str = "UTC"
    state_dir: str = "data"
    run_lock_stale_seconds: int = 1800

    # Job knobs
    completed_status_value: str = "Completed"
    silence_teams_without_scrum: bool = False
    group_create_pause: float = 2.0

    def sheet(self, key: str) -> tuple[Optional[str], str]:
        """Return (spreadsheet id, worksheet name) for a logical sheet key."""
        registry = {
            "MANDATES": (self.sheet_id_mandates, self.sheet_name_mandates),
            "TEAMS": (self.sheet_id_teams, self.sheet_name_teams),
            "TIMETRACKER": (self.sheet_id_timetracker, self.sheet_name_timetracker),
        }
        return registry[key]


# Env keys each job cannot run without
JOB_REQUIREMENTS: Dict[str, List[str]] = {
    "people-to-sheet": ["NOTION_API_KEY", "NOTION_PEOPLE_DB_ID", "GOOGLE_SERVICE_ACCOUNT_FILE", "SHEET_ID_MANDATES"],
    "teams-to-sheet": ["NOTION_API_KEY", "NOTION_TEAM_DB_ID", "GOOGLE_SERVICE_ACCOUNT_FILE", "SHEET_ID_TEAMS"],
    "sheet-to-notion": ["NOTION_API_KEY", "GOOGLE_SERVICE_ACCOUNT_FILE", "SHEET_ID_MANDATES"],
    "sheet-to-slack": ["SLACK_USER_TOKEN", "GOOGLE_SERVICE_ACCOUNT_FILE", "SHEET_ID_MANDATES"],
    "slack-groups": ["SLACK_USER_TOKEN", "GOOGLE_SERVICE_ACCOUNT_FILE", "SHEET_ID_MANDATES"],
    "link-people": ["NOTION_API_KEY", "NOTION_PEOPLE_DB_ID", "NOTION_INTERNAL_PEOPLE_DB_ID"],
    "notify-scrum": ["NOTION_API_KEY", "NOTION_TEAM_DB_ID", "SLACK_BOT_TOKEN"],
    "time-tracker": ["GOOGLE_SERVICE_ACCOUNT_FILE", "SHEET_ID_MANDATES", "SHEET_ID_TIMETRACKER"],
}

# Env key -> Config attribute
_ENV_ATTRS: Dict[str, str] = {
    "NOTION_API_KEY": "notion_api_key",
    "NOTION_PEOPLE_DB_ID": "notion_people_db_id",
    "NOTION_INTERNAL_PEOPLE_DB_ID": "notion_internal_people_db_id",
    "NOTION_TEAM_DB_ID": "notion_team_db_id",
    "SLACK_BOT_TOKEN": "slack_bot_token",
    "SLACK_USER_TOKEN": "slack_user_token",
    "LOGGING_CHANNEL_ID": "logging_channel_id",
    "GOOGLE_SERVICE_ACCOUNT_FILE": "google_service_account_file",
    "SHEET_ID_MANDATES": "sheet_id_mandates",
    "SHEET_ID_TEAMS": "sheet_id_teams",
    "SHEET_ID_TIMETRACKER": "sheet_id_timetracker",
}


def load_config() -> Config:
    cfg = Config(
        notion_api_key=os.getenv("NOTION_API_KEY"),
        notion_version=os.getenv("NOTION_VERSION", "2022-06-28"),
        notion_page_size=_env_int("NOTION_PAGE_SIZE", 100),
        notion_people_db_id=os.getenv("NOTION_PEOPLE_DB_ID"),
        notion_internal_people_db_id=os.getenv("NOTION_INTERNAL_PEOPLE_DB_ID"),
        notion_team_db_id=os.getenv("NOTION_TEAM_DB_ID"),
        slack_bot_token=os.getenv("SLACK_BOT_TOKEN"),
        slack_user_token=os.getenv("SLACK_USER_TOKEN"),
        logging_channel_id=os.getenv("LOGGING_CHANNEL_ID"),
        google_service_account_file=os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE"),
        sheet_id_mandates=os.getenv("SHEET_ID_MANDATES"),
        sheet_name_mandates=os.getenv("SHEET_NAME_MANDATES", "Mandates"),
        sheet_id_teams=os.getenv("SHEET_ID_TEAMS"),
        sheet_name_teams=os.getenv("SHEET_NAME_TEAMS", "Team Directory"),
        sheet_id_timetracker=os.getenv("SHEET_ID_TIMETRACKER"),
        sheet_name_timetracker=os.getenv("SHEET_NAME_TIMETRACKER", "All Recap - Current and Archived"),
        http_max_retries=_env_int("HTTP_MAX_RETRIES", 3),
        http_timeout=_env_float("HTTP_TIMEOUT", 20.0),
        tz=os.getenv("TZ", "UTC"),
        state_dir=os.getenv("STATE_DIR", "data"),
        run_lock_stale_seconds=_env_int("RUN_LOCK_STALE_SECONDS", 1800),
        completed_status_value=os.getenv("COMPLETED_STATUS_VALUE", "Completed"),
        silence_teams_without_scrum=_flag("SILENCE_TEAMS_WITHOUT_SCRUM", "0"),
        group_create_pause=_env_float("GROUP_CREATE_PAUSE", 2.0),
    )
    return cfg


def validate_config(cfg: Config, job: str) -> list[str]:
    """Return the env keys required by ``job`` that are unset on ``cfg``."""
    missing: list[str] = []
    for key in JOB_REQUIREMENTS.get(job, []):
        if not getattr(cfg, _ENV_ATTRS[key], None):
            missing.append(key)
    return missing
