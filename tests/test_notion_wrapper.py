import sys
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest
from notion_client.errors import HTTPResponseError, RequestTimeoutError

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from integrations.notion.client import NotionWrapper, _error_envelope  # type: ignore  # noqa: E402


class _Endpoint:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(query=None, retrieve=None, update=None, prop=None):
    return SimpleNamespace(
        databases=SimpleNamespace(query=query or _Endpoint()),
        pages=SimpleNamespace(
            retrieve=retrieve or _Endpoint(),
            update=update or _Endpoint(),
            properties=SimpleNamespace(retrieve=prop or _Endpoint()),
        ),
    )


def _wrapper(client, sleeps=None):
    return NotionWrapper("secret", client=client, sleep=(sleeps.append if sleeps is not None else lambda _: None))


def test_query_passes_cursor_filter_and_page_size():
    query = _Endpoint({"object": "list", "results": [], "has_more": False})
    notion = _wrapper(_client(query=query))
    notion.query_database("db1", start_cursor="c1", filter={"property": "Status"})
    assert query.calls == [
        {"database_id": "db1", "page_size": 100, "start_cursor": "c1", "filter": {"property": "Status"}}
    ]


def test_rate_limited_envelope_is_retried_with_backoff():
    sleeps = []
    query = _Endpoint(
        {"object": "error", "status": 429, "code": "rate_limited"},
        {"object": "error", "status": 502, "code": "internal_server_error"},
        {"object": "list", "results": [{"id": "p1"}]},
    )
    res = _wrapper(_client(query=query), sleeps).query_database("db1")
    assert res["results"] == [{"id": "p1"}]
    assert sleeps == [1, 2]


def test_validation_error_returns_at_once():
    sleeps = []
    update = _Endpoint({"object": "error", "status": 400, "code": "validation_error"})
    res = _wrapper(_client(update=update), sleeps).update_page_properties("p1", {"X": {"number": 1}})
    assert res["code"] == "validation_error"
    assert sleeps == []
    assert update.calls == [{"page_id": "p1", "properties": {"X": {"number": 1}}}]


def test_sdk_http_errors_become_envelopes_and_retry():
    sleeps = []
    retrieve = _Endpoint(
        HTTPResponseError(httpx.Response(503)),
        HTTPResponseError(httpx.Response(503)),
        HTTPResponseError(httpx.Response(503)),
        HTTPResponseError(httpx.Response(503)),
    )
    res = _wrapper(_client(retrieve=retrieve), sleeps).retrieve_page("p1")
    assert res["object"] == "error"
    assert res["status"] == 503
    assert res["code"] == "internal_server_error"
    assert len(retrieve.calls) == 4
    assert sleeps == [1, 2, 4]


def test_persistent_timeout_propagates():
    retrieve = _Endpoint(*[RequestTimeoutError() for _ in range(4)])
    with pytest.raises(RequestTimeoutError):
        _wrapper(_client(retrieve=retrieve)).retrieve_page("p1")


def test_fetch_page_title():
    retrieve = _Endpoint(
        {"object": "page", "properties": {"Name": {"type": "title", "title": [{"plain_text": "Alpha"}]}}},
        {"object": "error", "status": 404, "code": "object_not_found"},
        {"object": "page", "properties": {}},
    )
    notion = _wrapper(_client(retrieve=retrieve))
    assert notion.fetch_page_title("p1") == "Alpha"
    assert notion.fetch_page_title("p2") == "[Error Fetching Title]"
    assert notion.fetch_page_title("p3") == "[No Title]"


def test_error_envelope_from_status():
    assert _error_envelope(SimpleNamespace(status=503))["code"] == "internal_server_error"
    assert _error_envelope(SimpleNamespace(status=429))["code"] == "rate_limited"
    assert _error_envelope(SimpleNamespace(status=400))["code"] == "http_error"


def test_connection_failure_is_retried():
    sleeps = []
    query = _Endpoint(httpx.ConnectError("connection refused"), {"object": "list", "results": []})
    res = _wrapper(_client(query=query), sleeps).query_database("db1")
    assert res["results"] == []
    assert len(query.calls) == 2
    assert sleeps == [1]


def test_persistent_connection_failure_propagates():
    update = _Endpoint(*[httpx.ReadError("reset") for _ in range(4)])
    with pytest.raises(httpx.TransportError):
        _wrapper(_client(update=update)).update_page_properties("p1", {})
    assert len(update.calls) == 4


def test_retrieve_page_property_pages_through_cursor():
    prop = _Endpoint({"object": "list", "results": [], "has_more": False})
    _wrapper(_client(prop=prop)).retrieve_page_property("p1", "abc", start_cursor="c2")
    assert prop.calls == [{"page_id": "p1", "property_id": "abc", "page_size": 100, "start_cursor": "c2"}]
