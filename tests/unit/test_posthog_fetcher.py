"""
Tests for the PostHog event fetcher and the in-memory fetcher.

Uses httpx.MockTransport so no network is touched.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import pytest

from estate_insights.adapters.posthog import InMemoryEventFetcher, PostHogEventFetcher
from estate_insights.components.insights import AnalyticsConfigError, AnalyticsUpstreamError

START = datetime(2024, 6, 13, 12, 0, 0, tzinfo=UTC)
END = datetime(2024, 6, 20, 12, 0, 0, tzinfo=UTC)

Handler = Callable[[httpx.Request], httpx.Response]


def make_fetcher(handler: Handler, **kwargs: Any) -> PostHogEventFetcher:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return PostHogEventFetcher(
        api_key=kwargs.pop("api_key", "phx_test"),
        project_id=kwargs.pop("project_id", "42"),
        host="https://posthog.test",
        client=client,
        **kwargs,
    )


def page(results: list[dict[str, Any]], next_url: str | None = None) -> httpx.Response:
    return httpx.Response(200, json={"results": results, "next": next_url})


class TestPostHogEventFetcher:
    def test_request_shape(self, raw_event: Callable[..., dict[str, Any]]) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return page([raw_event("property_session_start", session_id="A")])

        events = make_fetcher(handler).fetch("prop-1", START, END)

        assert len(events) == 1
        assert events[0].event_name == "session_start"

        request = seen[0]
        assert request.url.path == "/api/projects/42/events/"
        assert request.headers["Authorization"] == "Bearer phx_test"
        params = request.url.params
        assert json.loads(params["where"]) == [["properties", "property_id", "exact", "prop-1"]]
        assert params["after"] == START.isoformat()
        assert params["before"] == END.isoformat()
        assert params["orderBy"] == "-timestamp"
        assert params["limit"] == "1000"

    def test_follows_next_links(self, raw_event: Callable[..., dict[str, Any]]) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            if request.url.params.get("cursor") == "2":
                return page([raw_event("$pageview")])
            return page(
                [raw_event("$pageview"), raw_event("$pageview")],
                next_url="https://posthog.test/api/projects/42/events/?cursor=2",
            )

        events = make_fetcher(handler).fetch("prop-1", START, END)

        assert len(events) == 3
        assert len(calls) == 2
        assert calls[1] == "https://posthog.test/api/projects/42/events/?cursor=2"

    def test_stops_at_max_pages(
        self,
        raw_event: Callable[..., dict[str, Any]],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return page(
                [raw_event("$pageview")],
                next_url=f"https://posthog.test/api/projects/42/events/?cursor={len(calls)}",
            )

        events = make_fetcher(handler, max_pages=2).fetch("prop-1", START, END)

        assert len(calls) == 2
        assert len(events) == 2
        assert "more events available" in caplog.text

    def test_empty_results(self) -> None:
        events = make_fetcher(lambda r: httpx.Response(200, json={"results": []})).fetch(
            "prop-1", START, END
        )
        assert events == []

    @pytest.mark.parametrize("status", [401, 403, 404, 500, 503])
    def test_error_status_raises_with_status(self, status: int) -> None:
        fetcher = make_fetcher(lambda r: httpx.Response(status, json={"detail": "nope"}))

        with pytest.raises(AnalyticsUpstreamError) as exc_info:
            fetcher.fetch("prop-1", START, END)

        assert exc_info.value.status == status

    def test_transport_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AnalyticsUpstreamError) as exc_info:
            make_fetcher(handler).fetch("prop-1", START, END)

        assert exc_info.value.status is None

    def test_invalid_json(self) -> None:
        fetcher = make_fetcher(lambda r: httpx.Response(200, content=b"<html>"))

        with pytest.raises(AnalyticsUpstreamError):
            fetcher.fetch("prop-1", START, END)

    def test_non_object_payload(self) -> None:
        fetcher = make_fetcher(lambda r: httpx.Response(200, json=[1, 2, 3]))

        with pytest.raises(AnalyticsUpstreamError):
            fetcher.fetch("prop-1", START, END)

    @pytest.mark.parametrize("api_key, project_id", [(None, "42"), ("phx", None), ("", "")])
    def test_missing_credentials(self, api_key: str | None, project_id: str | None) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return page([])

        fetcher = make_fetcher(handler, api_key=api_key, project_id=project_id)

        assert fetcher.is_configured() is False
        with pytest.raises(AnalyticsConfigError):
            fetcher.fetch("prop-1", START, END)
        assert calls == []


class TestInMemoryEventFetcher:
    def test_filters_property_and_window(self, raw_event: Callable[..., dict[str, Any]]) -> None:
        fetcher = InMemoryEventFetcher(
            [
                raw_event("$pageview", ts=START),
                raw_event("$pageview", ts=END),
                raw_event("$pageview", ts=START - timedelta(seconds=1)),
                raw_event("$pageview", ts=START + timedelta(days=1), property_id="other"),
                raw_event("$pageview", ts=None),
            ]
        )

        events = fetcher.fetch("prop-1", START, END)

        assert [e.timestamp for e in events] == [START]

    def test_newest_first(self, raw_event: Callable[..., dict[str, Any]]) -> None:
        fetcher = InMemoryEventFetcher()
        for hours in (1, 30, 5):
            fetcher.add(raw_event("$pageview", ts=START + timedelta(hours=hours)))

        events = fetcher.fetch("prop-1", START, END)

        timestamps = [e.timestamp for e in events]
        assert timestamps == sorted(timestamps, reverse=True)  # type: ignore[type-var]

    def test_clear(self, raw_event: Callable[..., dict[str, Any]]) -> None:
        fetcher = InMemoryEventFetcher([raw_event("$pageview", ts=START)])
        fetcher.clear()
        assert fetcher.fetch("prop-1", START, END) == []


class TestInMemorySeedFile:
    def test_yaml_list(self, tmp_path: Path) -> None:
        path = tmp_path / "events.yaml"
        path.write_text(
            "- event: property_session_start\n"
            "  timestamp: '2024-06-15T14:30:00Z'\n"
            "  properties: {property_id: prop-1, session_id: A}\n"
            "- event: $pageview\n"
            "  timestamp: 2024-06-15T15:00:00Z\n"
            "  properties: {property_id: prop-1}\n"
            "- not an event\n"
        )

        events = InMemoryEventFetcher.from_file(path).fetch("prop-1", START, END)

        assert [e.event_name for e in events] == ["pageview", "session_start"]

    def test_posthog_page_json(self, tmp_path: Path, raw_event: Callable[..., dict[str, Any]]) -> None:
        path = tmp_path / "page.json"
        path.write_text(json.dumps({"results": [raw_event("$pageview")], "next": None}))

        events = InMemoryEventFetcher.from_file(path).fetch("prop-1", START, END)

        assert len(events) == 1

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            InMemoryEventFetcher.from_file(tmp_path / "absent.yaml")

    @pytest.mark.parametrize("content", ["key: [unclosed\n", "just text\n", "results: 3\n"])
    def test_unreadable_content(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "events.yaml"
        path.write_text(content)

        with pytest.raises(ValueError):
            InMemoryEventFetcher.from_file(path)
