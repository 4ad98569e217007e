"""
Insights component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import PropertyEvent


class AnalyticsConfigError(Exception):
    """Analytics provider credentials or settings are missing."""


class AnalyticsUpstreamError(Exception):
    """Analytics provider answered with a failure or could not be reached."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class EventFetcherPort(Protocol):
    """Source of property events for a time window."""

    def fetch(
        self,
        property_id: str,
        start: datetime,
        end: datetime,
    ) -> list[PropertyEvent]:
        """
        Return events for property_id within [start, end), newest first.

        Raises AnalyticsConfigError or AnalyticsUpstreamError.
        """
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...


class InsightsRulesPort(Protocol):
    """Port for analytics rules configuration."""

    def get_bounce_threshold_seconds(self) -> float:
        ...

    def get_conversion_keywords(self) -> tuple[str, ...]:
        ...

    def get_display_timezone(self) -> str:
        ...

    def get_default_days(self) -> int:
        ...

    def get_max_days(self) -> int:
        ...
