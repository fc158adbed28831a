"""Directory sync jobs between Notion, Slack and Google Sheets."""

from .results import JobResult  # noqa: F401
from .service import (
    JOBS,
    run_all,
    run_link_people,
    run_notify_scrum,
    run_people_to_sheet,
    run_sheet_to_notion,
    run_sheet_to_slack,
    run_slack_groups,
    run_teams_to_sheet,
    run_time_tracker,
)  # noqa: F401
