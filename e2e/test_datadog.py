"""Tests for the Datadog RUM integration layer.

Covers query building, fixture mode and live-mode pagination. No network
calls and no real API keys: live mode runs against an httpx.MockTransport.
"""

import json

import httpx
import pytest

from core.config import DatadogSettings, TriageSettings
from sre.integrations.datadog import (
    NOISE_PATTERNS,
    SEARCH_PATH,
    build_search_query,
    check_connection,
    fetch_rum_errors,
    load_fixture,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def make_item(n: int) -> dict:
    return {
        "id": f"evt-{n}",
        "type": "rum",
        "attributes": {
            "timestamp": 1714557600000 + n,
            "service": "web-app",
            "attributes": {"error": {"message": f"boom {n}", "type": "Error", "source": "source"}},
        },
    }


def live_settings(**overrides) -> TriageSettings:
    datadog = DatadogSettings(api_key="api-key", app_key="app-key", page_limit=2, max_pages=10)
    return TriageSettings(datadog=datadog, **overrides)


class FakeRumApi:
    """Serves pre-baked pages and records every request it receives."""

    def __init__(self, pages: list[dict], status_code: int = 200):
        self.pages = pages
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"errors": ["Forbidden"]})
        index = min(len(self.requests), len(self.pages)) - 1
        return httpx.Response(200, json=self.pages[index])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def body(self, i: int) -> dict:
        return json.loads(self.requests[i].content)


# ── build_search_query ────────────────────────────────────────────────────────

class TestBuildSearchQuery:
    def test_default_query(self):
        query = build_search_query(TriageSettings())
        assert query.startswith("@type:error AND @error.handling:unhandled")
        assert all(pattern in query for pattern in NOISE_PATTERNS)

    def test_service_and_source_filters(self):
        settings = TriageSettings(service="checkout", error_source="network", exclude_noise=False)
        assert build_search_query(settings) == (
            '@type:error AND @service:"checkout" AND @error.handling:unhandled AND @error.source:network'
        )

    def test_all_handling_adds_no_filter(self):
        settings = TriageSettings(error_handling="all", exclude_noise=False)
        assert build_search_query(settings) == "@type:error"


# ── Fixture mode ──────────────────────────────────────────────────────────────

class TestFixtureMode:
    async def test_without_keys_loads_fixture(self):
        events = await fetch_rum_errors(TriageSettings())
        assert len(events) == 6
        assert events[0].id == "AAAAAYwL1xMrq1"

    async def test_one_key_is_not_enough(self):
        settings = TriageSettings(datadog=DatadogSettings(api_key="only-api"))
        api = FakeRumApi([{"data": []}])
        await fetch_rum_errors(settings, transport=api.transport)
        assert api.requests == []

    def test_missing_fixture_returns_empty(self, tmp_path):
        assert load_fixture(tmp_path / "nope.json") == []

    def test_bare_list_fixture(self, tmp_path):
        path = tmp_path / "events.json"
        path.write_text(json.dumps([make_item(1), {"id": "broken"}]))
        events = load_fixture(path)
        assert [e.id for e in events] == ["evt-1"]


# ── Live mode ─────────────────────────────────────────────────────────────────

class TestLiveMode:
    async def test_sends_credentials_and_window(self):
        api = FakeRumApi([{"data": [make_item(1)], "meta": {"page": {}}}])
        settings = live_settings(date_from="now-2h", date_to="now-1h")

        await fetch_rum_errors(settings, "@type:error", transport=api.transport)

        request = api.requests[0]
        assert request.url.path == SEARCH_PATH
        assert request.url.host == "api.datadoghq.com"
        assert request.headers["DD-API-KEY"] == "api-key"
        assert request.headers["DD-APPLICATION-KEY"] == "app-key"
        body = api.body(0)
        assert body["filter"] == {"from": "now-2h", "to": "now-1h", "query": "@type:error"}
        assert body["page"] == {"limit": 2}
        assert body["sort"] == "-timestamp"

    async def test_follows_cursor_until_short_page(self):
        api = FakeRumApi([
            {"data": [make_item(1), make_item(2)], "meta": {"page": {"after": "c1"}}},
            {"data": [make_item(3), make_item(4)], "meta": {"page": {"after": "c2"}}},
            {"data": [make_item(5)], "meta": {"page": {"after": "c3"}}},
        ])

        events = await fetch_rum_errors(live_settings(), transport=api.transport)

        assert [e.id for e in events] == [f"evt-{n}" for n in range(1, 6)]
        assert len(api.requests) == 3
        assert api.body(1)["page"]["cursor"] == "c1"
        assert api.body(2)["page"]["cursor"] == "c2"

    async def test_stops_without_cursor(self):
        api = FakeRumApi([{"data": [make_item(1), make_item(2)], "meta": {"page": {}}}])
        events = await fetch_rum_errors(live_settings(), transport=api.transport)
        assert len(events) == 2
        assert len(api.requests) == 1

    async def test_stops_on_empty_page(self):
        api = FakeRumApi([{"data": []}])
        assert await fetch_rum_errors(live_settings(), transport=api.transport) == []

    async def test_respects_max_pages(self):
        api = FakeRumApi([{"data": [make_item(1), make_item(2)], "meta": {"page": {"after": "again"}}}])
        settings = live_settings()
        settings.datadog.max_pages = 3

        events = await fetch_rum_errors(settings, transport=api.transport)

        assert len(api.requests) == 3
        assert len(events) == 6

    async def test_skips_malformed_items(self):
        api = FakeRumApi([{"data": [make_item(1), {"id": "no-attributes"}], "meta": {"page": {}}}])
        events = await fetch_rum_errors(live_settings(), transport=api.transport)
        assert [e.id for e in events] == ["evt-1"]

    async def test_http_error_raises(self):
        api = FakeRumApi([], status_code=403)
        with pytest.raises(httpx.HTTPStatusError):
            await fetch_rum_errors(live_settings(), transport=api.transport)


# ── check_connection ──────────────────────────────────────────────────────────

class TestCheckConnection:
    async def test_ok(self):
        api = FakeRumApi([{"data": []}])
        assert await check_connection(live_settings().datadog, transport=api.transport) is True
        assert api.body(0)["page"] == {"limit": 1}

    async def test_forbidden(self):
        api = FakeRumApi([], status_code=403)
        assert await check_connection(live_settings().datadog, transport=api.transport) is False
