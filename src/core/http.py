"""Bounded exponential-backoff retry shared by the Slack and Notion clients."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

import requests
from requests import exceptions as req_exc

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "RetryingHttpClient",
    "call_with_retry",
    "envelope_is_retriable",
    "envelope_ok",
    "response_is_retriable",
    "response_json",
]

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3

# Slack reports failures as {"ok": false, "error": "<code>"}
SLACK_RETRIABLE_ERRORS = frozenset(
    {
        "ratelimited",
        "rate_limited",
        "service_unavailable",
        "request_timeout",
        "fatal_error",
        "internal_error",
    }
)

# Notion reports failures as {"object": "error", "code": "<code>"}
NOTION_RETRIABLE_CODES = frozenset(
    {
        "rate_limited",
        "internal_server_error",
        "service_unavailable",
        "conflict_error",
        "database_connection_unavailable",
        "gateway_timeout",
    }
)

TRANSPORT_ERRORS: Tuple[Type[BaseException], ...] = (req_exc.ConnectionError, req_exc.Timeout)


def envelope_is_retriable(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    if data.get("ok") is False:
        return str(data.get("error") or "") in SLACK_RETRIABLE_ERRORS
    if data.get("object") == "error":
        return str(data.get("code") or "") in NOTION_RETRIABLE_CODES
    return False


def envelope_ok(data: Any) -> bool:
    """Success per the remote's own envelope, not the transport status."""
    if not isinstance(data, dict):
        return False
    if "ok" in data:
        return bool(data.get("ok"))
    return data.get("object") != "error"


def response_json(resp: Any) -> Optional[Dict[str, Any]]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def response_is_retriable(resp: Any) -> bool:
    data = response_json(resp)
    if data is None:
        # Gateways in front of both APIs answer throttling/outages with HTML
        status = int(getattr(resp, "status_code", 0) or 0)
        return status == 429 or status >= 500
    return envelope_is_retriable(data)


def call_with_retry(
    attempt: Callable[[], T],
    is_retriable: Callable[[T], bool],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    sleep: Callable[[float], Any] = time.sleep,
    label: str = "request",
    transient: Tuple[Type[BaseException], ...] = TRANSPORT_ERRORS,
) -> T:
    """Run ``attempt`` up to ``max_retries + 1`` times.

    After failed attempt ``n`` (0-indexed) the loop sleeps ``2**n`` seconds.
    A result that is not retriable is returned at once. When retries run out
    the last result is returned unchanged so callers can inspect the failure.
    Transport errors are retried on the same schedule; if no attempt ever
    produced a result, the last transport error propagates.
    """
    have_result = False
    result: Any = None
    last_exc: Optional[BaseException] = None
    for n in range(max_retries + 1):
        try:
            result = attempt()
            have_result = True
        except transient as exc:
            last_exc = exc
            print(f"[http] {label} transport error attempt={n + 1}: {exc}")
        else:
            if not is_retriable(result):
                return result
            print(f"[http] {label} retriable failure attempt={n + 1}")
        if n < max_retries:
            sleep(2 ** n)
    if have_result:
        return result
    assert last_exc is not None
    raise last_exc


class RetryingHttpClient:
    """requests.Session wrapper whose calls go through :func:`call_with_retry`."""

    def __init__(
        self,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.max_retries = max_retries
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep

    def call(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        def _attempt() -> requests.Response:
            return self.session.request(
                method.upper(),
                url,
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )

        return call_with_retry(
            _attempt,
            response_is_retriable,
            max_retries=self.max_retries,
            sleep=self.sleep,
            label=f"{method.upper()} {url}",
        )
