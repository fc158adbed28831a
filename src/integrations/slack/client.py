from __future__ import annotations

import re
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from core.http import RetryingHttpClient, envelope_ok, response_json

SLACK_API = "https://slack.com/api"

HANDLE_MAX_LEN = 21

# Custom profile field ids, keyed by the Mandates sheet column feeding them
PROFILE_FIELD_IDS: Dict[str, str] = {
    "Position": "Xf06JZK27DRA",
    "Team (Current)": "Xf03V366R202",
    "Notion Page URL": "Xf06JGJMBZPZ",
    "Mandate (Status)": "Xf0759PXS7BP",
    "Availability (avg h/w)": "Xf074Y4V1KHV",
    "Created (Profile)": "Xf075CJ4SXEF",
    "Last Update": "Xf07HUS9GSSC",
    "Hours (decimal)": "Xf07GZDPHHV4",
}


def generate_slack_handle(name: Any) -> str:
    """Slack-safe user group handle for ``name``.

    Lower-case, whitespace to ``-``, drop anything outside ``[a-z0-9._-]``,
    squash separator runs, trim separators, cut to 21 characters. Names that
    clean down to nothing get ``default-user-<ms timestamp>``.
    """
    if not isinstance(name, str) or not name:
        handle = f"default-user-{int(time.time() * 1000)}"
        print(f"[slack] invalid group name {name!r}; using handle {handle}")
        return handle
    handle = name.lower()
    handle = re.sub(r"\s+", "-", handle)
    handle = re.sub(r"[^a-z0-9._-]", "", handle)
    handle = re.sub(r"[-_.]{2,}", "-", handle)
    handle = re.sub(r"^[-_.]+|[-_.]+$", "", handle)
    handle = handle[:HANDLE_MAX_LEN]
    if not handle:
        handle = f"default-user-{int(time.time() * 1000)}"
        print(f"[slack] group name {name!r} cleaned to nothing; using handle {handle}")
    return handle


def build_profile_fields(values: Mapping[str, Any]) -> Dict[str, Any]:
    """``users.profile.set`` payload from sheet column -> value."""
    fields: Dict[str, Any] = {}
    for column, field_id in PROFILE_FIELD_IDS.items():
        raw = values.get(column)
        fields[field_id] = {"value": "" if raw is None else str(raw)}
    return {"fields": fields}


class SlackClient:
    """Slack Web API calls used by the jobs, all through the retrying client.

    One instance per token: the user token manages groups and profiles, the
    bot token posts messages.
    """

    def __init__(self, token: str, *, http: Optional[RetryingHttpClient] = None, base_url: str = SLACK_API) -> None:
        self.token = token
        self.http = http or RetryingHttpClient()
        self.base_url = base_url.rstrip("/")
        self._groups_cache: Optional[List[Dict[str, Any]]] = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json; charset=utf-8",
        }

    def _get(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        resp = self.http.call("GET", f"{self.base_url}/{method}", headers=self._headers(), params=params)
        data = response_json(resp)
        if data is None:
            return {"ok": False, "error": f"http_{getattr(resp, 'status_code', 0)}"}
        return data

    def _post(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = self.http.call("POST", f"{self.base_url}/{method}", headers=self._headers(), json=payload)
        data = response_json(resp)
        if data is None:
            return {"ok": False, "error": f"http_{getattr(resp, 'status_code', 0)}"}
        return data

    # --- users ---------------------------------------------------------
    def lookup_user_id_by_email(self, email: str, *, purpose: str = "user") -> Optional[str]:
        email = (email or "").strip()
        if not email:
            return None
        data = self._get("users.lookupByEmail", {"email": email})
        if not envelope_ok(data):
            print(f"[slack] lookup failed for {purpose} {email}: {data.get('error')}")
            return None
        user_id = (data.get("user") or {}).get("id")
        return str(user_id) if user_id else None

    def set_profile_fields(self, user_id: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        data = self._post("users.profile.set", {"user": user_id, "profile": build_profile_fields(values)})
        if not envelope_ok(data):
            print(f"[slack] profile update failed user={user_id}: {data.get('error')}")
        return data

    # --- user groups ---------------------------------------------------
    def list_usergroups(self, *, refresh: bool = False) -> List[Dict[str, Any]]:
        if self._groups_cache is not None and not refresh:
            return self._groups_cache
        data = self._get("usergroups.list")
        if not envelope_ok(data):
            print(f"[slack] usergroups.list failed: {data.get('error')}")
            return []
        groups = data.get("usergroups")
        self._groups_cache = list(groups) if isinstance(groups, list) else []
        return self._groups_cache

    def find_usergroup_id(self, name: str) -> Optional[str]:
        for group in self.list_usergroups():
            if group.get("name") == name:
                return group.get("id")
        return None

    def create_usergroup(self, name: str) -> Dict[str, Any]:
        """Return ``{"ok": True, "usergroup": {...}, "created": bool}`` or an error envelope."""
        trimmed = (name or "").strip()
        if not trimmed:
            print(f"[slack] invalid group name {name!r}")
            return {"ok": False, "error": "invalid_group_name"}
        existing = self.find_usergroup_id(trimmed)
        if existing:
            return {"ok": True, "usergroup": {"id": existing, "name": trimmed}, "created": False}
        handle = generate_slack_handle(trimmed)
        print(f"[slack] creating group '{trimmed}' handle={handle}")
        data = self._post("usergroups.create", {"name": trimmed, "handle": handle})
        if not envelope_ok(data):
            print(f"[slack] create group '{trimmed}' failed: {data.get('error')}")
            return data
        group = data.get("usergroup") or {}
        if self._groups_cache is not None and group:
            self._groups_cache.append(group)
        return {"ok": True, "usergroup": group, "created": True}

    def list_usergroup_members(self, usergroup_id: str) -> Optional[List[str]]:
        """Current member ids, or None when Slack would not list them."""
        data = self._get("usergroups.users.list", {"usergroup": usergroup_id})
        if not envelope_ok(data):
            print(f"[slack] members lookup failed group={usergroup_id}: {data.get('error')}")
            return None
        return [str(u) for u in data.get("users") or []]

    def add_users_to_usergroup(
        self,
        usergroup_id: str,
        user_ids: Iterable[str],
        *,
        existing: Optional[List[str]] = None,
    ) -> Tuple[bool, List[str]]:
        """Add only the missing ``user_ids``; never drops current members.

        Returns (ok, added ids). Nothing to add is a successful no-op with no
        update call. ``usergroups.users.update`` replaces the whole membership,
        so an unlistable group returns (False, []) without an update.
        """
        if existing is None:
            existing = self.list_usergroup_members(usergroup_id)
            if existing is None:
                return False, []
        current = list(existing)
        present = set(current)
        new_users: List[str] = []
        for uid in user_ids:
            if uid and uid not in present and uid not in new_users:
                new_users.append(uid)
        if not new_users:
            return True, []
        data = self._post(
            "usergroups.users.update",
            {"usergroup": usergroup_id, "users": ",".join(current + new_users)},
        )
        if not envelope_ok(data):
            print(f"[slack] group update failed group={usergroup_id}: {data.get('error')}")
            return False, []
        return True, new_users

    # --- messages ------------------------------------------------------
    def post_message(self, channel: str, text: str) -> Dict[str, Any]:
        return self._post("chat.postMessage", {"channel": channel, "text": text, "link_names": True})

    def send_direct_message(self, user_id: str, text: str) -> bool:
        if not user_id or not text:
            print("[slack] direct message missing user or text")
            return False
        data = self.post_message(user_id, text)
        if not envelope_ok(data):
            print(f"[slack] DM to {user_id} failed: {data.get('error')}")
            return False
        return True
