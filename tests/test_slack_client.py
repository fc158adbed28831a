import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from integrations.slack.client import (  # type: ignore  # noqa: E402
    PROFILE_FIELD_IDS,
    SlackClient,
    build_profile_fields,
    generate_slack_handle,
)


class _Resp:
    def __init__(self, payload):
        self.status_code = 200
        self._payload = payload

    def json(self):
        return self._payload


class _Http:
    """Routes Slack methods to canned payloads and records every call."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def call(self, method, url, *, headers=None, params=None, json=None):
        name = url.rsplit("/", 1)[-1]
        self.calls.append((method, name, params, json))
        payload = self.routes[name]
        return _Resp(payload(params, json) if callable(payload) else payload)


def _names(http):
    return [c[1] for c in http.calls]


def test_generate_slack_handle():
    assert generate_slack_handle("Team  Alpha!!") == "team-alpha"
    assert generate_slack_handle("  ..__Data.. Science__") == "data-science"
    assert generate_slack_handle("Product Design Guild Of Canada") == "product-design-guild-"
    assert len(generate_slack_handle("x" * 40)) == 21
    assert generate_slack_handle("!!!").startswith("default-user-")
    assert generate_slack_handle(None).startswith("default-user-")


def test_lookup_user_by_email():
    http = _Http({"users.lookupByEmail": lambda params, _: {"ok": True, "user": {"id": "U1"}}})
    slack = SlackClient("xoxp", http=http)
    assert slack.lookup_user_id_by_email(" a@x.com ") == "U1"
    assert http.calls[0][2] == {"email": "a@x.com"}
    assert slack.lookup_user_id_by_email("") is None
    assert len(http.calls) == 1


def test_lookup_failure_returns_none(capsys):
    http = _Http({"users.lookupByEmail": {"ok": False, "error": "users_not_found"}})
    slack = SlackClient("xoxp", http=http)
    assert slack.lookup_user_id_by_email("a@x.com", purpose="scrum master") is None
    assert "users_not_found" in capsys.readouterr().out


def test_create_usergroup_reuses_existing_group():
    http = _Http({"usergroups.list": {"ok": True, "usergroups": [{"id": "S1", "name": "Alpha"}]}})
    slack = SlackClient("xoxp", http=http)
    res = slack.create_usergroup(" Alpha ")
    assert res == {"ok": True, "usergroup": {"id": "S1", "name": "Alpha"}, "created": False}
    assert _names(http) == ["usergroups.list"]


def test_create_usergroup_with_generated_handle():
    http = _Http(
        {
            "usergroups.list": {"ok": True, "usergroups": []},
            "usergroups.create": lambda _, body: {"ok": True, "usergroup": {"id": "S9", "name": body["name"]}},
        }
    )
    slack = SlackClient("xoxp", http=http)
    res = slack.create_usergroup("Data Science")
    assert res["created"] is True
    assert res["usergroup"]["id"] == "S9"
    assert http.calls[-1][3] == {"name": "Data Science", "handle": "data-science"}
    # cached listing now knows the new group
    assert slack.find_usergroup_id("Data Science") == "S9"
    assert _names(http).count("usergroups.list") == 1


def test_create_usergroup_failure_is_returned():
    http = _Http(
        {
            "usergroups.list": {"ok": True, "usergroups": []},
            "usergroups.create": {"ok": False, "error": "name_already_exists"},
        }
    )
    res = SlackClient("xoxp", http=http).create_usergroup("Alpha")
    assert res == {"ok": False, "error": "name_already_exists"}


def test_add_users_only_sends_missing_members():
    http = _Http(
        {
            "usergroups.users.list": {"ok": True, "users": ["U1"]},
            "usergroups.users.update": {"ok": True},
        }
    )
    slack = SlackClient("xoxp", http=http)
    ok, added = slack.add_users_to_usergroup("S1", ["U1", "U2", "U2"])
    assert ok is True
    assert added == ["U2"]
    assert http.calls[-1][3] == {"usergroup": "S1", "users": "U1,U2"}


def test_add_users_noop_makes_no_update_call():
    http = _Http({"usergroups.users.list": {"ok": True, "users": ["U1", "U2"]}})
    slack = SlackClient("xoxp", http=http)
    assert slack.add_users_to_usergroup("S1", ["U2"]) == (True, [])
    assert _names(http) == ["usergroups.users.list"]


def test_direct_message_and_profile_payloads():
    http = _Http({"chat.postMessage": {"ok": True}, "users.profile.set": {"ok": False, "error": "invalid_profile"}})
    slack = SlackClient("xoxb", http=http)
    assert slack.send_direct_message("U1", "hello") is True
    assert http.calls[0][3] == {"channel": "U1", "text": "hello", "link_names": True}
    assert slack.send_direct_message("", "hello") is False

    res = slack.set_profile_fields("U1", {"Position": "Dev", "Hours (decimal)": 12.5})
    assert res["ok"] is False
    body = http.calls[-1][3]
    assert body["user"] == "U1"
    assert body["profile"]["fields"]["Xf06JZK27DRA"] == {"value": "Dev"}
    assert body["profile"]["fields"]["Xf07GZDPHHV4"] == {"value": "12.5"}


def test_profile_fields_cover_every_mapped_column():
    fields = build_profile_fields({})["fields"]
    assert set(fields) == set(PROFILE_FIELD_IDS.values())
    assert all(v == {"value": ""} for v in fields.values())


def test_unlistable_group_is_never_overwritten():
    http = _Http(
        {
            "usergroups.users.list": {"ok": False, "error": "ratelimited"},
            "usergroups.users.update": {"ok": True},
        }
    )
    slack = SlackClient("xoxp", http=http)
    assert slack.list_usergroup_members("S1") is None
    assert slack.add_users_to_usergroup("S1", ["U1"]) == (False, [])
    assert "usergroups.users.update" not in _names(http)
