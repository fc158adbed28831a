from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

import httpx
from notion_client import Client
from notion_client.errors import APIResponseError, HTTPResponseError, RequestTimeoutError

from core.http import DEFAULT_MAX_RETRIES, call_with_retry, envelope_is_retriable, envelope_ok

from .properties import NO_TITLE, TITLE_ERROR, page_title

# SDK timeouts plus connection-level failures httpx raises unwrapped
NOTION_TRANSIENT_ERRORS = (RequestTimeoutError, httpx.TransportError)


def _error_envelope(exc: Exception) -> Dict[str, Any]:
    """Shape SDK errors like the API's own ``{"object": "error"}`` body."""
    if isinstance(exc, APIResponseError):
        code = getattr(exc, "code", None)
        return {
            "object": "error",
            "status": getattr(exc, "status", None),
            "code": str(getattr(code, "value", code) or ""),
            "message": str(exc),
        }
    status = int(getattr(exc, "status", 0) or 0)
    if status == 429:
        code = "rate_limited"
    elif status >= 500:
        code = "internal_server_error"
    else:
        code = "http_error"
    return {"object": "error", "status": status, "code": code, "message": str(exc)}


class NotionWrapper:
    """Thin wrapper over the Notion SDK.

    Every call goes through :func:`core.http.call_with_retry` and returns the
    response dict or an error envelope; SDK exceptions never leak out except
    for a timeout that persisted through all attempts.
    """

    def __init__(
        self,
        token: str,
        *,
        notion_version: str = "2022-06-28",
        page_size: int = 100,
        max_retries: int = DEFAULT_MAX_RETRIES,
        client: Any = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.token = token
        self.page_size = page_size
        self.max_retries = max_retries
        self.sleep = sleep
        self.client = client if client is not None else Client(auth=token, notion_version=notion_version)

    def _call(self, label: str, fn: Callable[..., Any], **kwargs: Any) -> Dict[str, Any]:
        def _attempt() -> Dict[str, Any]:
            try:
                res = fn(**kwargs)
            except HTTPResponseError as exc:
                return _error_envelope(exc)
            return res if isinstance(res, dict) else {"object": "error", "code": "invalid_response", "message": repr(res)}

        return call_with_retry(
            _attempt,
            envelope_is_retriable,
            max_retries=self.max_retries,
            sleep=self.sleep,
            label=f"notion {label}",
            transient=NOTION_TRANSIENT_ERRORS,
        )

    def query_database(
        self,
        database_id: str,
        *,
        start_cursor: Optional[str] = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"database_id": database_id, "page_size": self.page_size}
        if start_cursor:
            kwargs["start_cursor"] = start_cursor
        if filter:
            kwargs["filter"] = filter
        return self._call(f"query {database_id}", self.client.databases.query, **kwargs)

    def retrieve_page(self, page_id: str) -> Dict[str, Any]:
        return self._call(f"retrieve {page_id}", self.client.pages.retrieve, page_id=page_id)

    def retrieve_page_property(
        self,
        page_id: str,
        property_id: str,
        *,
        start_cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """One page of a property's items; used for relations longer than 25."""
        kwargs: Dict[str, Any] = {"page_id": page_id, "property_id": property_id, "page_size": self.page_size}
        if start_cursor:
            kwargs["start_cursor"] = start_cursor
        return self._call(f"property {property_id} of {page_id}", self.client.pages.properties.retrieve, **kwargs)

    def update_page_properties(self, page_id: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._call(f"update {page_id}", self.client.pages.update, page_id=page_id, properties=properties)

    def fetch_page_title(self, page_id: str) -> str:
        try:
            page = self.retrieve_page(page_id)
        except NOTION_TRANSIENT_ERRORS as exc:
            print(f"[notion] title lookup unreachable page={page_id}: {exc}")
            return TITLE_ERROR
        if not envelope_ok(page):
            print(f"[notion] title lookup failed page={page_id}: {page.get('code')} {page.get('message')}")
            return TITLE_ERROR
        title = page_title(page)
        return title or NO_TITLE
