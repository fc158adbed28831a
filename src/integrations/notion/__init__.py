"""Utilities for interacting with Notion."""

from .client import NotionWrapper  # noqa: F401
from .properties import (  # noqa: F401
    PropertyKind,
    TypedValue,
    display_value,
    extract_page_id,
    page_url,
    parse_property,
    property_display,
    relation_ids,
    relation_truncated,
    round_hours,
)
