import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from integrations.sheets.client import (  # type: ignore  # noqa: E402
    SheetTable,
    column_letter,
    headers_match,
)


class FakeWorksheet:
    def __init__(self, values=None, title="Sheet1"):
        self.values = [list(r) for r in (values or [])]
        self.title = title
        self.updates = []
        self.reads = []
        self.cleared = 0

    def get_all_values(self):
        return [list(r) for r in self.values]

    def get_values(self, range_name, **kwargs):
        self.reads.append((range_name, kwargs))
        return [list(r) for r in self.values[1:]]

    def clear(self):
        self.cleared += 1
        self.values = []

    def update(self, range_name=None, values=None):
        self.updates.append((range_name, values))


def test_column_letters():
    assert column_letter(1) == "A"
    assert column_letter(14) == "N"
    assert column_letter(26) == "Z"
    assert column_letter(27) == "AA"


def test_headers_match_is_a_prefix_check():
    assert headers_match(["A", " B ", "C", "extra"], ["A", "B", "C"])
    assert not headers_match(["A", "C", "B"], ["A", "B", "C"])
    assert not headers_match(["A"], ["A", "B"])


def test_read_records_pads_short_rows():
    ws = FakeWorksheet([["Name", "Email", ""], ["Jane", "j@x.com", "x"], ["Bob"]])
    header, records = SheetTable(ws).read_records()
    assert header == ["Name", "Email", ""]
    assert records == [{"Name": "Jane", "Email": "j@x.com"}, {"Name": "Bob", "Email": ""}]


def test_replace_rows_clears_then_writes_header_and_body():
    ws = FakeWorksheet([["old"], ["stale"]])
    written = SheetTable(ws).replace_rows(["Name", "Email"], [["Jane", "j@x.com"]])
    assert written == 1
    assert ws.cleared == 1
    assert ws.updates == [("A1", [["Name", "Email"]]), ("A2", [["Jane", "j@x.com"]])]


def test_replace_rows_with_nothing_keeps_header_only():
    ws = FakeWorksheet()
    assert SheetTable(ws).replace_rows(["Name"], []) == 0
    assert ws.updates == [("A1", [["Name"]])]


def test_write_block_skips_empty_values():
    ws = FakeWorksheet()
    table = SheetTable(ws)
    table.write_block("N2:Q1", [])
    table.write_block("N1:Q1", [["a", "b", "c", "d"]])
    assert ws.updates == [("N1:Q1", [["a", "b", "c", "d"]])]


def test_raw_range_read_asks_for_unformatted_serials():
    ws = FakeWorksheet([["Name", "Updated"], ["jane", 45296.5]])
    table = SheetTable(ws)
    assert table.read_range("A2:G", raw=True) == [["jane", 45296.5]]
    table.read_range("A2:A")
    assert ws.reads == [
        ("A2:G", {"value_render_option": "UNFORMATTED_VALUE", "date_time_render_option": "SERIAL_NUMBER"}),
        ("A2:A", {}),
    ]
