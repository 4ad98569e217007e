"""
PostHog event fetcher.

Implements EventFetcherPort against the PostHog events API, plus an
in-memory fetcher for development and tests.

Key behaviors:
- Filter by property_id and the [start, end) window, newest first
- Follow `next` pagination links up to max_pages
- Missing credentials -> AnalyticsConfigError
- Non-2xx status or transport failure -> AnalyticsUpstreamError
- No retries, no caching
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
import yaml

from estate_insights.components.insights import (
    AnalyticsConfigError,
    AnalyticsUpstreamError,
    PropertyEvent,
    parse_event,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://us.i.posthog.com"


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


class PostHogEventFetcher:
    """Fetch property events from the PostHog events API."""

    def __init__(
        self,
        api_key: str | None,
        project_id: str | None,
        host: str = DEFAULT_HOST,
        page_size: int = 1000,
        max_pages: int = 5,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._project_id = project_id
        self._host = host.rstrip("/")
        self._page_size = page_size
        self._max_pages = max_pages
        self._timeout = timeout_seconds
        self._client = client

    def is_configured(self) -> bool:
        return bool(self._api_key and self._project_id)

    def build_params(self, property_id: str, start: datetime, end: datetime) -> dict[str, str]:
        """Query parameters for the first page."""
        return {
            "where": json.dumps([["properties", "property_id", "exact", property_id]]),
            "after": _iso(start),
            "before": _iso(end),
            "orderBy": "-timestamp",
            "limit": str(self._page_size),
        }

    def fetch(self, property_id: str, start: datetime, end: datetime) -> list[PropertyEvent]:
        if not self.is_configured():
            raise AnalyticsConfigError(
                "POSTHOG_PERSONAL_API_KEY and POSTHOG_PROJECT_ID must be set"
            )

        url: str | None = f"{self._host}/api/projects/{self._project_id}/events/"
        params: dict[str, str] | None = self.build_params(property_id, start, end)
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        client = self._client or httpx.Client(timeout=self._timeout)
        raw_events: list[Any] = []
        try:
            pages = 0
            while url and pages < self._max_pages:
                payload = self._get_page(client, url, params, headers)
                results = payload.get("results") or []
                if isinstance(results, list):
                    raw_events.extend(results)
                pages += 1
                next_url = payload.get("next")
                url = next_url if isinstance(next_url, str) and next_url else None
                # The next link already carries the query string
                params = None
        finally:
            if self._client is None:
                client.close()

        if url:
            logger.warning(
                "Stopped after %d pages for property %s; more events available",
                self._max_pages,
                property_id,
            )

        return [parse_event(raw) for raw in raw_events]

    def _get_page(
        self,
        client: httpx.Client,
        url: str,
        params: dict[str, str] | None,
        headers: dict[str, str],
    ) -> dict[str, Any]:
        try:
            response = client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise AnalyticsUpstreamError(f"PostHog request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "PostHog API error: %s %s", response.status_code, response.reason_phrase
            )
            raise AnalyticsUpstreamError(
                f"PostHog API error: {response.status_code}",
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AnalyticsUpstreamError(
                "PostHog API returned invalid JSON", status=response.status_code
            ) from e

        if not isinstance(data, dict):
            raise AnalyticsUpstreamError(
                "PostHog API returned an unexpected payload", status=response.status_code
            )
        return data


class InMemoryEventFetcher:
    """In-memory event source for testing/dev."""

    def __init__(self, raw_events: Iterable[dict[str, Any]] | None = None) -> None:
        self._events: list[PropertyEvent] = [parse_event(r) for r in raw_events or []]

    @classmethod
    def from_file(cls, path: Path) -> InMemoryEventFetcher:
        """
        Seed from a YAML or JSON file.

        Accepts a list of raw events or a PostHog page (`{"results": [...]}`).
        Raises FileNotFoundError if missing, ValueError if unreadable.
        """
        if not path.exists():
            raise FileNotFoundError(f"Event seed file not found at: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid event seed file {path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("results")
        if not isinstance(data, list):
            raise ValueError(f"Event seed file {path} must hold a list of events")

        logger.info("Seeded %d events from %s", len(data), path)
        return cls(raw for raw in data if isinstance(raw, dict))

    def add(self, raw: dict[str, Any]) -> PropertyEvent:
        event = parse_event(raw)
        self._events.append(event)
        return event

    def fetch(self, property_id: str, start: datetime, end: datetime) -> list[PropertyEvent]:
        matching = [
            e
            for e in self._events
            if e.property_id == property_id
            and e.timestamp is not None
            and start <= e.timestamp < end
        ]
        return sorted(matching, key=lambda e: e.timestamp or start, reverse=True)

    def clear(self) -> None:
        self._events.clear()
