"""
Insights aggregator - derived metrics over a flat event list.

Every function here is pure: same events in, same metrics out. Input events
are never mutated and malformed attributes are treated as absent, so a noisy
client payload can never break the dashboard.

Key behaviors:
- Sessions are identified by session_id across start/heartbeat/end events
- Events without a session_id still count toward raw totals
- Percentages with an empty denominator are 0, never an error
- Daily trends use the UTC date; hour/weekday use the display timezone
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import (
    ENGAGEMENT,
    PAGEVIEW,
    PURCHASE_INTENT,
    SCROLL_COMPLETE,
    SCROLL_MILESTONE,
    SESSION_END,
    SESSION_LIFECYCLE_EVENTS,
    SESSION_START,
    BasicMetrics,
    DailyTrend,
    DeviceBreakdown,
    EngagementMetrics,
    FunnelAnalysis,
    HourlyBucket,
    InsightsMetrics,
    IntentSignals,
    PropertyEvent,
    ScrollAnalytics,
    TimeAnalysis,
    TopPage,
    UserTypes,
    WeekdayBucket,
    as_number,
)

# --- Configuration ---

MILESTONE_BUCKETS: tuple[str, ...] = ("25%", "50%", "75%")
COMPLETE_BUCKET = "90%"

WEEKDAYS: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

ANONYMOUS_ROLE = "ANONYMOUS"
DETAIL_PAGE_LABEL = "Property detail"


@dataclass(frozen=True)
class AggregateConfig:
    """Aggregation configuration."""

    # Sessions shorter than this count as a bounce
    bounce_threshold_seconds: float = 30.0

    # Event-name substrings that mark a conversion
    conversion_keywords: tuple[str, ...] = ("visit_request", "favorite", "contact")

    # IANA zone used for hour-of-day and weekday buckets
    timezone: str = "UTC"


DEFAULT_CONFIG = AggregateConfig()


# --- Helpers ---


def _named(events: Iterable[PropertyEvent], *names: str) -> list[PropertyEvent]:
    wanted = frozenset(names)
    return [e for e in events if e.event_name in wanted]


def _session_ids(events: Iterable[PropertyEvent]) -> set[str]:
    return {e.session_id for e in events if e.session_id}


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    total = sum(values)
    if math.isfinite(total):
        return total / len(values)
    # Large finite values can overflow the sum; average term by term instead
    return sum(v / len(values) for v in values)


def percentage(numerator: float, denominator: float, *, clamp: bool = True) -> float:
    """numerator / denominator as a percentage; 0 when denominator is empty."""
    if denominator <= 0:
        return 0.0
    value = (numerator / denominator) * 100
    if clamp:
        return min(100.0, max(0.0, value))
    return value


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero for non-negative metrics (2.5 -> 3)."""
    factor = 10**digits
    scaled = value * factor
    if not math.isfinite(scaled):
        return value
    return math.floor(scaled + 0.5) / factor


def _resolve_zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return UTC


def _in_zone(ts: datetime | None, zone: tzinfo) -> datetime | None:
    """ts converted to zone, or None when absent or outside the datetime range."""
    if ts is None:
        return None
    try:
        return ts.astimezone(zone)
    except (OverflowError, ValueError):
        return None


def _milestone_value(milestone: str | None) -> float | None:
    if milestone is None:
        return None
    return as_number(milestone.strip().rstrip("%"))


def is_conversion(event: PropertyEvent, keywords: Sequence[str]) -> bool:
    """True when the event name contains any conversion keyword."""
    return any(k in event.event_name for k in keywords)


# --- Basic Counts ---


def count_views(events: Sequence[PropertyEvent]) -> int:
    return len(_named(events, PAGEVIEW))


def count_sessions(events: Sequence[PropertyEvent]) -> int:
    """Distinct session ids across session lifecycle events."""
    return len(_session_ids(_named(events, *SESSION_LIFECYCLE_EVENTS)))


def _completed_durations(events: Sequence[PropertyEvent]) -> list[float]:
    return [
        e.total_time
        for e in _named(events, SESSION_END)
        if e.total_time is not None and e.total_time > 0
    ]


def average_session_time(events: Sequence[PropertyEvent]) -> float:
    return _mean(_completed_durations(events))


def bounce_rate(events: Sequence[PropertyEvent], threshold_seconds: float = 30.0) -> float:
    durations = _completed_durations(events)
    short = [d for d in durations if d < threshold_seconds]
    return percentage(len(short), len(durations))


def conversion_sessions(
    events: Sequence[PropertyEvent], keywords: Sequence[str]
) -> set[str]:
    return _session_ids(e for e in events if is_conversion(e, keywords))


def conversion_rate(events: Sequence[PropertyEvent], keywords: Sequence[str]) -> float:
    """Share of sessions with at least one conversion event."""
    total = count_sessions(events)
    return percentage(len(conversion_sessions(events, keywords)), total)


# --- Time Series ---


def daily_trends(events: Sequence[PropertyEvent]) -> tuple[DailyTrend, ...]:
    """
    Group session start/end events by UTC calendar date.

    Returns one entry per date, ascending.
    """
    sessions_by_day: dict[str, set[str]] = {}
    durations_by_day: dict[str, list[float]] = {}

    for event in _named(events, SESSION_START, SESSION_END):
        utc = _in_zone(event.timestamp, UTC)
        if utc is None:
            continue
        day = utc.date().isoformat()
        sessions = sessions_by_day.setdefault(day, set())
        durations = durations_by_day.setdefault(day, [])
        if event.session_id:
            sessions.add(event.session_id)
        if event.event_name == SESSION_END and event.total_time and event.total_time > 0:
            durations.append(event.total_time)

    return tuple(
        DailyTrend(
            date=day,
            sessions=len(sessions_by_day[day]),
            average_time=_mean(durations_by_day[day]),
        )
        for day in sorted(sessions_by_day)
    )


# --- Scroll / Engagement / Intent ---


def scroll_analytics(
    events: Sequence[PropertyEvent], total_sessions: int | None = None
) -> ScrollAnalytics:
    if total_sessions is None:
        total_sessions = count_sessions(events)

    milestones = _named(events, SCROLL_MILESTONE)
    completes = _named(events, SCROLL_COMPLETE)
    values = [_milestone_value(e.milestone) for e in milestones]

    counts: dict[str, int] = {}
    for bucket in MILESTONE_BUCKETS:
        target = _milestone_value(bucket)
        counts[bucket] = sum(1 for v in values if v is not None and v == target)
    counts[COMPLETE_BUCKET] = len(completes)

    return ScrollAnalytics(
        average_depth=_mean([v if v is not None else 0.0 for v in values]),
        completion_rate=percentage(len(completes), total_sessions, clamp=False),
        milestones=counts,
    )


def engagement_metrics(events: Sequence[PropertyEvent]) -> EngagementMetrics:
    engagements = _named(events, ENGAGEMENT)
    devices = [(e.device_type or "").lower() for e in engagements]

    return EngagementMetrics(
        total_engagements=len(engagements),
        average_time_to_engagement=_mean(
            [e.time_before_engagement or 0.0 for e in engagements]
        ),
        device_breakdown=DeviceBreakdown(
            mobile=devices.count("mobile"),
            tablet=devices.count("tablet"),
            desktop=devices.count("desktop"),
        ),
    )


def intent_signals(events: Sequence[PropertyEvent]) -> IntentSignals:
    intents = _named(events, PURCHASE_INTENT)
    levels = [(e.intent_level or "").lower() for e in intents]

    return IntentSignals(
        total=len(intents),
        high=levels.count("high"),
        medium=levels.count("medium"),
        low=levels.count("low"),
        average_time_to_intent=_mean(
            [e.session_duration_at_intent or 0.0 for e in intents]
        ),
    )


def funnel_analysis(
    events: Sequence[PropertyEvent], keywords: Sequence[str]
) -> FunnelAnalysis:
    started = _session_ids(_named(events, SESSION_START))
    scrolled = _session_ids(_named(events, SCROLL_MILESTONE, SCROLL_COMPLETE))
    engaged = _session_ids(_named(events, ENGAGEMENT))
    contacted = conversion_sessions(events, keywords)

    return FunnelAnalysis(
        view_to_scroll=percentage(len(scrolled), len(started)),
        scroll_to_engagement=percentage(len(engaged), len(scrolled)),
        engagement_to_contact=percentage(len(contacted), len(engaged)),
        overall_conversion=conversion_rate(events, keywords),
    )


# --- Temporal ---


def time_analysis(events: Sequence[PropertyEvent], timezone: str = "UTC") -> TimeAnalysis:
    """
    Session starts by local hour and weekday.

    Hourly buckets carry the average duration of sessions ending in that hour.
    Engagements are only tallied on weekdays that already saw a session.
    """
    zone = _resolve_zone(timezone)
    hourly_sessions: dict[int, int] = {}
    weekday_sessions: dict[int, int] = {}
    weekday_engagements: dict[int, int] = {}
    hourly_durations: dict[int, list[float]] = {}

    for event in _named(events, SESSION_START):
        local = _in_zone(event.timestamp, zone)
        if local is None:
            continue
        hourly_sessions[local.hour] = hourly_sessions.get(local.hour, 0) + 1
        weekday_sessions[local.weekday()] = weekday_sessions.get(local.weekday(), 0) + 1

    for event in _named(events, SESSION_END):
        if not event.total_time or event.total_time <= 0:
            continue
        local = _in_zone(event.timestamp, zone)
        if local is not None and local.hour in hourly_sessions:
            hourly_durations.setdefault(local.hour, []).append(event.total_time)

    for event in _named(events, ENGAGEMENT):
        local = _in_zone(event.timestamp, zone)
        if local is not None and local.weekday() in weekday_sessions:
            day = local.weekday()
            weekday_engagements[day] = weekday_engagements.get(day, 0) + 1

    return TimeAnalysis(
        hourly_breakdown=tuple(
            HourlyBucket(
                hour=hour,
                sessions=count,
                average_time=_mean(hourly_durations.get(hour, [])),
            )
            for hour, count in sorted(hourly_sessions.items())
        ),
        weekly_trends=tuple(
            WeekdayBucket(
                day=WEEKDAYS[day],
                sessions=count,
                engagement=weekday_engagements.get(day, 0),
            )
            for day, count in sorted(weekday_sessions.items())
        ),
    )


# --- Audience ---


def user_types(events: Sequence[PropertyEvent]) -> UserTypes:
    authenticated = sum(
        1
        for e in events
        if e.user_id and (e.user_role or "").upper() != ANONYMOUS_ROLE
    )
    return UserTypes(authenticated=authenticated, anonymous=len(events) - authenticated)


# --- Composition ---


def build_basic_metrics(
    events: Sequence[PropertyEvent],
    config: AggregateConfig | None = None,
) -> BasicMetrics:
    """Headline metrics plus daily trends and audience split."""
    config = config or DEFAULT_CONFIG
    total_views = count_views(events)

    return BasicMetrics(
        total_views=total_views,
        total_sessions=count_sessions(events),
        average_time=average_session_time(events),
        bounce_rate=bounce_rate(events, config.bounce_threshold_seconds),
        conversion_rate=conversion_rate(events, config.conversion_keywords),
        daily_trends=daily_trends(events),
        top_pages=(TopPage(page=DETAIL_PAGE_LABEL, views=total_views),),
        user_types=user_types(events),
    )


def build_insights(
    events: Sequence[PropertyEvent],
    config: AggregateConfig | None = None,
) -> InsightsMetrics:
    """Full insight set: headline metrics plus scroll, intent, funnel and time."""
    config = config or DEFAULT_CONFIG
    total_sessions = count_sessions(events)

    return InsightsMetrics(
        total_views=count_views(events),
        total_sessions=total_sessions,
        average_time=average_session_time(events),
        bounce_rate=bounce_rate(events, config.bounce_threshold_seconds),
        conversion_rate=conversion_rate(events, config.conversion_keywords),
        scroll_analytics=scroll_analytics(events, total_sessions),
        engagement_metrics=engagement_metrics(events),
        intent_signals=intent_signals(events),
        funnel_analysis=funnel_analysis(events, config.conversion_keywords),
        time_analysis=time_analysis(events, config.timezone),
    )


# --- Presentation rounding ---


def round_basic_metrics(metrics: BasicMetrics, digits: int = 0) -> BasicMetrics:
    return replace(
        metrics,
        average_time=round_half_up(metrics.average_time, digits),
        bounce_rate=round_half_up(metrics.bounce_rate, digits),
        conversion_rate=round_half_up(metrics.conversion_rate, digits),
        daily_trends=tuple(
            replace(t, average_time=round_half_up(t.average_time, digits))
            for t in metrics.daily_trends
        ),
    )


def round_insights(metrics: InsightsMetrics, digits: int = 2) -> InsightsMetrics:
    scroll = metrics.scroll_analytics
    engagement = metrics.engagement_metrics
    intent = metrics.intent_signals
    funnel = metrics.funnel_analysis
    timing = metrics.time_analysis

    return replace(
        metrics,
        average_time=round_half_up(metrics.average_time, digits),
        bounce_rate=round_half_up(metrics.bounce_rate, digits),
        conversion_rate=round_half_up(metrics.conversion_rate, digits),
        scroll_analytics=replace(
            scroll,
            average_depth=round_half_up(scroll.average_depth, digits),
            completion_rate=round_half_up(scroll.completion_rate, digits),
        ),
        engagement_metrics=replace(
            engagement,
            average_time_to_engagement=round_half_up(
                engagement.average_time_to_engagement, digits
            ),
        ),
        intent_signals=replace(
            intent,
            average_time_to_intent=round_half_up(intent.average_time_to_intent, digits),
        ),
        funnel_analysis=FunnelAnalysis(
            view_to_scroll=round_half_up(funnel.view_to_scroll, digits),
            scroll_to_engagement=round_half_up(funnel.scroll_to_engagement, digits),
            engagement_to_contact=round_half_up(funnel.engagement_to_contact, digits),
            overall_conversion=round_half_up(funnel.overall_conversion, digits),
        ),
        time_analysis=replace(
            timing,
            hourly_breakdown=tuple(
                replace(h, average_time=round_half_up(h.average_time, digits))
                for h in timing.hourly_breakdown
            ),
        ),
    )
