import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from services.sync.gate import (  # type: ignore  # noqa: E402
    Proposed,
    WriteOutcome,
    dates_equal,
    diff_fields,
    write_if_changed,
)


class _Sender:
    def __init__(self, response=None):
        self.calls = []
        self.response = response if response is not None else {"object": "page", "id": "p"}

    def __call__(self, target_id, patch):
        self.calls.append((target_id, patch))
        return self.response


CURRENT = {
    "Hours (Current)": {"type": "number", "number": 3.1},
    "Hours (Last Update)": {"type": "date", "date": {"start": "2024-01-05T10:00:00.000+00:00"}},
    "Team": {"type": "relation", "relation": [{"id": "t1"}, {"id": "t2"}]},
    "Note": {"type": "rich_text", "rich_text": [{"plain_text": "hello"}]},
}


def test_rounded_hours_equal_to_remote_are_skipped_without_a_call():
    send = _Sender()
    res = write_if_changed("p", {"Hours (Current)": Proposed("number", "3.14159")}, CURRENT, send)
    assert res.outcome is WriteOutcome.SKIPPED
    assert send.calls == []


def test_subset_equal_proposal_issues_no_call():
    send = _Sender()
    proposed = {
        "Hours (Current)": Proposed("number", 3.1),
        "Hours (Last Update)": Proposed("date", "2024-01-05T10:00:00Z"),
        "Team": Proposed("relation", ("t2", "t1")),
        "Note": Proposed("text", "hello"),
    }
    assert write_if_changed("p", proposed, CURRENT, send).outcome is WriteOutcome.SKIPPED
    assert send.calls == []


def test_only_changed_fields_are_sent():
    send = _Sender()
    proposed = {
        "Hours (Current)": Proposed("number", "4.26"),
        "Hours (Last Update)": Proposed("date", "2024-01-05T10:00:00+00:00"),
    }
    res = write_if_changed("p", proposed, CURRENT, send)
    assert res.outcome is WriteOutcome.UPDATED
    assert send.calls == [("p", {"Hours (Current)": {"number": 4.3}})]


def test_failure_envelope_is_reported_not_retried():
    send = _Sender({"object": "error", "status": 400, "code": "validation_error"})
    res = write_if_changed("p", {"Hours (Current)": Proposed("number", 9)}, CURRENT, send)
    assert res.outcome is WriteOutcome.FAILED
    assert len(send.calls) == 1
    assert res.response["code"] == "validation_error"


def test_payload_shapes_for_missing_current_fields():
    patch = diff_fields(
        {
            "Team": Proposed("relation", ("t9",)),
            "Status": Proposed("select", "Active"),
            "Note": Proposed("text", "x"),
            "Blank": Proposed("number", None),
            "Junk": Proposed("number", "abc"),
        },
        {},
    )
    assert patch == {
        "Team": {"relation": [{"id": "t9"}]},
        "Status": {"select": {"name": "Active"}},
        "Note": {"rich_text": [{"type": "text", "text": {"content": "x"}}]},
    }


def test_date_comparison():
    assert dates_equal("2024-01-05T10:00:00Z", "2024-01-05T11:00:00+01:00")
    assert not dates_equal("2024-01-05", "2024-01-05T00:00:00+00:00")
    assert dates_equal("2024-01-05", "2024-01-05")
    assert not dates_equal("2024-01-05", "")
    assert dates_equal("someday", "someday")
