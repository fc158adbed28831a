from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

import gspread
from gspread.utils import DateTimeOption, ValueRenderOption


def open_worksheet(service_account_file: str, spreadsheet_id: str, worksheet_name: str) -> "SheetTable":
    """Open one worksheet with a service-account key file."""
    gc = gspread.service_account(filename=service_account_file)
    spreadsheet = gc.open_by_key(spreadsheet_id)
    print(f"[sheets] opened {spreadsheet_id} / {worksheet_name}")
    return SheetTable(spreadsheet.worksheet(worksheet_name))


def column_letter(index: int) -> str:
    """1-based column index -> A1 letters (1 -> A, 27 -> AA)."""
    letters = ""
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def headers_match(header: Sequence[Any], expected: Sequence[str]) -> bool:
    """True when ``header`` starts with exactly the ``expected`` columns."""
    if len(header) < len(expected):
        return False
    return all(str(header[i]).strip() == name for i, name in enumerate(expected))


class SheetTable:
    """Header-keyed access to a gspread worksheet."""

    def __init__(self, worksheet: Any) -> None:
        self.ws = worksheet

    @property
    def title(self) -> str:
        return str(getattr(self.ws, "title", ""))

    def read_table(self) -> Tuple[List[str], List[List[str]]]:
        values = self.ws.get_all_values()
        if not values:
            return [], []
        header = [str(h).strip() for h in values[0]]
        return header, [list(r) for r in values[1:]]

    def read_records(self) -> Tuple[List[str], List[Dict[str, str]]]:
        """Rows as dicts keyed by header; short rows are padded with ""."""
        header, rows = self.read_table()
        records: List[Dict[str, str]] = []
        for row in rows:
            padded = list(row) + [""] * (len(header) - len(row))
            records.append({name: str(padded[i]) for i, name in enumerate(header) if name})
        return header, records

    def read_range(self, range_name: str, *, raw: bool = False) -> List[List[Any]]:
        """Cells of ``range_name``; ``raw`` gives numbers and date serials unformatted."""
        if not raw:
            return [list(r) for r in self.ws.get_values(range_name)]
        values = self.ws.get_values(
            range_name,
            value_render_option=ValueRenderOption.unformatted,
            date_time_render_option=DateTimeOption.serial_number,
        )
        return [list(r) for r in values]

    def write_block(self, range_name: str, values: List[List[Any]]) -> None:
        if not values:
            return
        self.ws.update(range_name=range_name, values=values)

    def replace_rows(self, header: Sequence[str], rows: List[List[Any]]) -> int:
        """Clear the sheet, write ``header`` in row 1 and ``rows`` from A2."""
        print(f"[sheets] replacing {self.title}: {len(rows)} rows")
        self.ws.clear()
        self.ws.update(range_name="A1", values=[list(header)])
        if rows:
            self.ws.update(range_name="A2", values=rows)
        return len(rows)

