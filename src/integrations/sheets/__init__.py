"""Google Sheets access through gspread."""

from .client import SheetTable, column_letter, headers_match, open_worksheet  # noqa: F401
