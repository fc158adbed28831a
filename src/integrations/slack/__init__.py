"""Slack Web API client."""

from .client import PROFILE_FIELD_IDS, SlackClient, build_profile_fields, generate_slack_handle  # noqa: F401
