"""Column schemas and property names shared by the jobs."""

from __future__ import annotations

from typing import List

from integrations.notion.properties import page_url, property_display

from .projection import Column

# Notion property names
EMAIL_PROP = "Email (Org)"
PEOPLE_RELATION_PROP = "People Directory (Sync)"
HOURS_CURRENT_PROP = "Hours (Current)"
HOURS_LAST_UPDATE_PROP = "Hours (Last Update)"
TEAM_NAME_PROP = "Name"
TEAM_STATUS_PROP = "Status"
SCRUM_MASTER_PROP = "Scrum Master"

# Mandates sheet columns
COL_GREYBOX_ID = "Greybox ID"
COL_STATUS = "Mandate (Status)"
COL_TEAM = "Team (Current)"
COL_EMAIL = "Email (Org)"
COL_NOTION_URL = "Notion Page URL"
COL_ERROR_DETECTION = "Error Detection"
COL_LAST_UPDATE = "Last Update"
COL_START_DATE = "Start Date"
COL_HOURS_DECIMAL = "Hours (decimal)"

INVALID_GROUP_STATUSES = frozenset({"To Verify", "Completed", "Archived"})


def greybox_id(page) -> str:
    email = property_display(page.get("properties") or {}, EMAIL_PROP)
    return email.split("@")[0].lower() if email else ""


def notion_page_url(page) -> str:
    pid = page.get("id")
    return page_url(pid) if pid else ""


MANDATES_COLUMNS: List[Column] = [
    Column(COL_GREYBOX_ID, compute=greybox_id),
    Column(COL_STATUS),
    Column("Name"),
    Column("Position"),
    Column(COL_TEAM),
    Column("Team (Previous)"),
    Column("Mandate (Date)"),
    Column("Hours (Initial)"),
    Column("Hours (Current)"),
    Column("Availability (avg h/w)"),
    Column(COL_EMAIL),
    Column("Created (Profile)"),
    Column(COL_NOTION_URL, compute=notion_page_url),
]

TEAM_DIRECTORY_COLUMNS: List[Column] = [
    Column("Name"),
    Column("Status"),
    Column("People", prop="People (Current)"),
    Column("Scrum Master"),
    Column("Activity (Epic)"),
    Column("Date (Epic)"),
]

# Time tracker block written to N..Q of the Mandates sheet
TIME_TRACKER_HEADERS: List[str] = [COL_ERROR_DETECTION, COL_LAST_UPDATE, COL_START_DATE, COL_HOURS_DECIMAL]
TIME_TRACKER_START_COL = 14

MANDATES_SHEET_HEADERS: List[str] = [c.header for c in MANDATES_COLUMNS]
MANDATES_FULL_HEADERS: List[str] = MANDATES_SHEET_HEADERS + TIME_TRACKER_HEADERS
