from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from estate_insights.components.insights import PropertyEvent, parse_event
from estate_insights.rules.loader import load_rules
from estate_insights.rules.models import Rules

PROJECT_ROOT = Path(__file__).parent.parent

# Saturday
BASE_TS = datetime(2024, 6, 15, 14, 30, 0, tzinfo=UTC)


class FixedClock:
    """Clock frozen at a given instant."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    def now_utc(self) -> datetime:
        return self._now


@pytest.fixture
def rules_path() -> Path:
    return PROJECT_ROOT / "rules.yaml"


@pytest.fixture
def rules(rules_path: Path) -> Rules:
    """Real rules from the project root."""
    return load_rules(rules_path)


@pytest.fixture
def raw_event() -> Callable[..., dict[str, Any]]:
    """Factory for provider-shaped event payloads."""

    def _make(
        name: str,
        ts: datetime | None = BASE_TS,
        property_id: str = "prop-1",
        **props: Any,
    ) -> dict[str, Any]:
        return {
            "event": name,
            "timestamp": ts.isoformat() if ts else None,
            "properties": {"property_id": property_id, **props},
        }

    return _make


@pytest.fixture
def event(raw_event: Callable[..., dict[str, Any]]) -> Callable[..., PropertyEvent]:
    """Factory for parsed PropertyEvent objects."""

    def _make(name: str, ts: datetime | None = BASE_TS, **props: Any) -> PropertyEvent:
        return parse_event(raw_event(name, ts, **props))

    return _make


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen five days after BASE_TS."""
    return FixedClock(datetime(2024, 6, 20, 12, 0, 0, tzinfo=UTC))
