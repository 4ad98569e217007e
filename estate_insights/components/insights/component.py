"""
Insights component - Property analytics and insights.

Fetches a property's events for a trailing window and derives dashboard
metrics from them.

Invariants:
- Parameters are validated before any fetch happens
- Window is [now - days, now); the fetcher enforces it, the aggregator does not
- Fetch failures become error records, never raw exceptions
- Aggregation never fails
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ._aggregate import (
    AggregateConfig,
    build_basic_metrics,
    build_insights,
    round_basic_metrics,
    round_insights,
)
from .models import (
    AnalyticsInput,
    AnalyticsOutput,
    InsightsInput,
    InsightsOutput,
    InsightsValidationError,
    Period,
    PropertyEvent,
)
from .ports import (
    AnalyticsConfigError,
    AnalyticsUpstreamError,
    EventFetcherPort,
    InsightsRulesPort,
    TimePort,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DAYS = 365

_TRUE_VALUES = frozenset({"true", "1", "yes"})
_FALSE_VALUES = frozenset({"false", "0", "no"})


# --- Validation ---


def validate_days(
    raw: str | None, max_days: int = DEFAULT_MAX_DAYS
) -> tuple[int | None, list[InsightsValidationError]]:
    """Parse the days parameter; must be an integer in [1, max_days]."""
    value = (raw or "").strip()
    try:
        days = int(value)
    except ValueError:
        return None, [
            InsightsValidationError(
                code="invalid_params",
                message=f"days must be an integer, got {raw!r}",
                field_name="days",
            )
        ]

    if days < 1 or days > max_days:
        return None, [
            InsightsValidationError(
                code="invalid_params",
                message=f"days must be between 1 and {max_days}",
                field_name="days",
            )
        ]
    return days, []


def validate_flag(
    raw: str | None, field_name: str
) -> tuple[bool | None, list[InsightsValidationError]]:
    value = (raw or "").strip().lower()
    if value in _TRUE_VALUES:
        return True, []
    if value in _FALSE_VALUES:
        return False, []
    return None, [
        InsightsValidationError(
            code="invalid_params",
            message=f"{field_name} must be true or false",
            field_name=field_name,
        )
    ]


def validate_timezone(raw: str | None) -> list[InsightsValidationError]:
    if raw is None:
        return []
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        return [
            InsightsValidationError(
                code="invalid_params",
                message=f"Unknown timezone: {raw}",
                field_name="timezone",
            )
        ]
    return []


# --- Configuration ---


def _build_config(
    rules: InsightsRulesPort | None, timezone: str | None = None
) -> AggregateConfig:
    """Build aggregate config from rules port."""
    if rules is None:
        config = AggregateConfig()
    else:
        config = AggregateConfig(
            bounce_threshold_seconds=rules.get_bounce_threshold_seconds(),
            conversion_keywords=rules.get_conversion_keywords(),
            timezone=rules.get_display_timezone(),
        )
    if timezone is not None:
        return AggregateConfig(
            bounce_threshold_seconds=config.bounce_threshold_seconds,
            conversion_keywords=config.conversion_keywords,
            timezone=timezone,
        )
    return config


def _max_days(rules: InsightsRulesPort | None) -> int:
    return rules.get_max_days() if rules is not None else DEFAULT_MAX_DAYS


def _now(time_port: TimePort | None) -> datetime:
    if time_port:
        return time_port.now_utc()
    from estate_insights.adapters.clock import SystemClock

    return SystemClock().now_utc()


def _period(days: int, time_port: TimePort | None) -> Period:
    end = _now(time_port)
    return Period(start_date=end - timedelta(days=days), end_date=end, days=days)


def _fetch(
    fetcher: EventFetcherPort, property_id: str, period: Period
) -> tuple[list[PropertyEvent] | None, list[InsightsValidationError]]:
    """Run the fetcher and turn its failures into error records."""
    try:
        events = fetcher.fetch(property_id, period.start_date, period.end_date)
    except AnalyticsConfigError as e:
        logger.error("Analytics provider not configured: %s", e)
        return None, [
            InsightsValidationError(
                code="upstream_config_missing",
                message="Analytics provider configuration is incomplete",
            )
        ]
    except AnalyticsUpstreamError as e:
        logger.warning("Analytics provider request failed (status=%s): %s", e.status, e)
        return None, [
            InsightsValidationError(
                code="upstream_error",
                message="Failed to retrieve analytics data",
                status=e.status,
            )
        ]

    logger.info(
        "Fetched %d events for property %s (%d days)", len(events), property_id, period.days
    )
    return events, []


# --- Component Entry Points ---


def run_analytics(
    inp: AnalyticsInput,
    *,
    fetcher: EventFetcherPort,
    time_port: TimePort | None = None,
    rules: InsightsRulesPort | None = None,
) -> AnalyticsOutput:
    """
    Compute basic property analytics.

    Args:
        inp: Property id and trailing window in days.
        fetcher: Event source port.
        time_port: Optional time port.
        rules: Optional rules port for configuration.

    Returns:
        AnalyticsOutput with whole-number metrics, or errors.
    """
    days, errors = validate_days(inp.days, _max_days(rules))
    if errors or days is None:
        return AnalyticsOutput(metrics=None, period=None, errors=errors, success=False)

    period = _period(days, time_port)
    events, errors = _fetch(fetcher, inp.property_id, period)
    if errors or events is None:
        return AnalyticsOutput(metrics=None, period=period, errors=errors, success=False)

    metrics = round_basic_metrics(build_basic_metrics(events, _build_config(rules)))
    logger.info(
        "Analytics computed: views=%d sessions=%d average_time=%s bounce_rate=%s",
        metrics.total_views,
        metrics.total_sessions,
        metrics.average_time,
        metrics.bounce_rate,
    )
    return AnalyticsOutput(metrics=metrics, period=period)


def run_insights(
    inp: InsightsInput,
    *,
    fetcher: EventFetcherPort,
    time_port: TimePort | None = None,
    rules: InsightsRulesPort | None = None,
) -> InsightsOutput:
    """
    Compute the full insight set (scroll, engagement, intent, funnel, time).

    Args:
        inp: Property id, window, include_events flag and optional timezone.
        fetcher: Event source port.
        time_port: Optional time port.
        rules: Optional rules port for configuration.

    Returns:
        InsightsOutput with metrics rounded to two decimals, or errors.
    """
    days, errors = validate_days(inp.days, _max_days(rules))
    include_events, flag_errors = validate_flag(inp.include_events, "includeEvents")
    errors = errors + flag_errors + validate_timezone(inp.timezone)
    if errors or days is None:
        return InsightsOutput(metrics=None, period=None, errors=errors, success=False)

    period = _period(days, time_port)
    events, errors = _fetch(fetcher, inp.property_id, period)
    if errors or events is None:
        return InsightsOutput(metrics=None, period=period, errors=errors, success=False)

    metrics = round_insights(build_insights(events, _build_config(rules, inp.timezone)))
    logger.info(
        "Insights computed: sessions=%d scroll_completion=%s intent_signals=%d",
        metrics.total_sessions,
        metrics.scroll_analytics.completion_rate,
        metrics.intent_signals.total,
    )
    return InsightsOutput(
        metrics=metrics,
        period=period,
        events=tuple(events) if include_events else None,
    )


def run(
    inp: AnalyticsInput | InsightsInput,
    *,
    fetcher: EventFetcherPort,
    time_port: TimePort | None = None,
    rules: InsightsRulesPort | None = None,
) -> AnalyticsOutput | InsightsOutput:
    """
    Main entry point for the insights component.

    Dispatches to appropriate handler based on input type.
    """
    if isinstance(inp, InsightsInput):
        return run_insights(inp, fetcher=fetcher, time_port=time_port, rules=rules)
    elif isinstance(inp, AnalyticsInput):
        return run_analytics(inp, fetcher=fetcher, time_port=time_port, rules=rules)
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
