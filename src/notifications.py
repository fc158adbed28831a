from __future__ import annotations

import json
from typing import TYPE_CHECKING, Optional

import requests

DEFAULT_TIMEOUT = 8.0
SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from services.sync.results import JobResult


def send_slack_message(
    token: Optional[str],
    channel: Optional[str],
    text: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> bool:
    """Post ``text`` to a Slack channel with the bot token.

    Returns True when Slack accepts the message. Without a token or channel
    nothing is sent and True is returned. Failures are logged to stdout and
    never raised, so a broken log channel cannot stop a job.
    """

    if not token or not channel:
        return True
    payload = {"channel": channel, "text": text}
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json; charset=utf-8",
    }
    try:
        resp = requests.post(SLACK_POST_MESSAGE_URL, json=payload, headers=headers, timeout=timeout)
    except Exception as exc:  # pragma: no cover - network failure branch
        print(f"[notify] send failed: {exc}")
        return False
    if resp.status_code != 200:
        print(f"[notify] unexpected status: {resp.status_code} body={resp.text[:200]}")
        return False
    try:
        data = resp.json()
    except (json.JSONDecodeError, ValueError):
        print("[notify] non-JSON response from Slack")
        return False
    if not data.get("ok"):
        print(f"[notify] Slack error: {data.get('error')}")
        return False
    return True


class Notifier:
    """Console + Slack log channel."""

    def __init__(self, token: Optional[str], channel: Optional[str], *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.token = token
        self.channel = channel
        self.timeout = timeout
        self.sent: list[str] = []

    def send(self, text: str) -> bool:
        print(f"[notify] {text}")
        self.sent.append(text)
        return send_slack_message(self.token, self.channel, text, timeout=self.timeout)


def format_job_summary(result: "JobResult") -> str:
    lines: list[str] = []
    header = f"*{result.job}* finished"
    if result.aborted:
        header = f"*{result.job}* aborted"
    elif not result.complete:
        header += " (partial fetch)"
    lines.append(header)
    lines.append(f"- scanned: {result.scanned}")
    lines.append(f"- updated: {result.updated}")
    if result.skipped:
        lines.append(f"- skipped: {result.skipped}")
    if result.failed:
        lines.append(f"- failed: {result.failed}")
    for note in result.notes:
        lines.append(f"- {note}")
    lines.append(f"- duration: {_format_duration(result.duration)}")
    return "\n".join(lines)


def _format_duration(seconds: float) -> str:
    if seconds < 0:
        seconds = 0.0
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    remainder = seconds - minutes * 60
    if minutes >= 60:
        hours = minutes // 60
        minutes = minutes % 60
        return f"{hours}h{minutes}m{remainder:.1f}s"
    return f"{minutes}m{remainder:.1f}s"
