"""
Insights component input/output models.

Events arrive as open-ended property bags from the analytics provider. The
attributes the aggregator reads get explicit fields; everything else is kept
in ``extra`` so new client attributes pass through untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

# --- Validation Error ---


@dataclass(frozen=True)
class InsightsValidationError:
    """Insights error record (validation or upstream failure)."""

    code: str
    message: str
    field_name: str | None = None
    status: int | None = None


# --- Enums ---


ErrorCode = Literal["invalid_params", "upstream_config_missing", "upstream_error"]
DeviceType = Literal["mobile", "tablet", "desktop"]
IntentLevel = Literal["high", "medium", "low"]

PAGEVIEW = "pageview"
SESSION_START = "session_start"
SESSION_END = "session_end"
SESSION_HEARTBEAT = "session_heartbeat"
SCROLL_MILESTONE = "scroll_milestone"
SCROLL_COMPLETE = "scroll_complete"
ENGAGEMENT = "engagement"
PURCHASE_INTENT = "purchase_intent"

SESSION_LIFECYCLE_EVENTS: frozenset[str] = frozenset(
    {SESSION_START, SESSION_END, SESSION_HEARTBEAT}
)

_EVENT_ALIASES: dict[str, str] = {
    "$pageview": PAGEVIEW,
    "property_viewed": PAGEVIEW,
    "viewed": PAGEVIEW,
}

_CONSUMED_KEYS: frozenset[str] = frozenset(
    {
        "property_id",
        "session_id",
        "user_id",
        "user_role",
        "total_time",
        "active_time",
        "scroll_depth",
        "milestone",
        "intent_level",
        "device_type",
        "time_before_engagement",
        "session_duration_at_intent",
    }
)


def canonical_event_name(name: str | None) -> str:
    """Map a provider event name to its canonical form."""
    if not name:
        return ""
    lowered = str(name).strip().lower()
    if lowered in _EVENT_ALIASES:
        return _EVENT_ALIASES[lowered]
    if lowered.startswith("property_"):
        lowered = lowered[len("property_") :]
    return _EVENT_ALIASES.get(lowered, lowered)


# --- Lenient coercion ---


def as_number(value: Any) -> float | None:
    """Coerce a payload value to float, or None when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def as_text(value: Any) -> str | None:
    """Coerce a payload value to a non-empty string, or None."""
    if value is None or isinstance(value, dict | list | tuple):
        return None
    text = str(value).strip()
    return text or None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch seconds into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        seconds = as_number(value)
        if seconds is None:
            return None
        try:
            return datetime.fromtimestamp(seconds, UTC)
        except (OverflowError, OSError, ValueError):
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    try:
        return dt.astimezone(UTC)
    except (OverflowError, ValueError):
        return None


# --- Event Model ---


@dataclass(frozen=True)
class PropertyEvent:
    """One client-tracked interaction, scoped to a property."""

    event_name: str
    timestamp: datetime | None = None
    raw_name: str = ""
    property_id: str | None = None
    session_id: str | None = None
    user_id: str | None = None
    user_role: str | None = None
    total_time: float | None = None
    active_time: float | None = None
    scroll_depth: float | None = None
    milestone: str | None = None
    intent_level: str | None = None
    device_type: str | None = None
    time_before_engagement: float | None = None
    session_duration_at_intent: float | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_payload(self) -> dict[str, Any]:
        """Rebuild the provider-shaped payload for this event."""
        properties: dict[str, Any] = dict(self.extra)
        for key in _CONSUMED_KEYS:
            value = getattr(self, key)
            if value is not None:
                properties[key] = value
        return {
            "event": self.raw_name or self.event_name,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "properties": properties,
        }


def parse_event(raw: Any) -> PropertyEvent:
    """
    Build a PropertyEvent from a provider payload.

    Never raises: missing or malformed attributes become None.
    """
    if not isinstance(raw, dict):
        return PropertyEvent(event_name="")

    props = raw.get("properties")
    if not isinstance(props, dict):
        props = {}

    raw_name = as_text(raw.get("event")) or ""

    return PropertyEvent(
        event_name=canonical_event_name(raw_name),
        timestamp=parse_timestamp(raw.get("timestamp")),
        raw_name=raw_name,
        property_id=as_text(props.get("property_id")),
        session_id=as_text(props.get("session_id")),
        user_id=as_text(props.get("user_id")),
        user_role=as_text(props.get("user_role")),
        total_time=as_number(props.get("total_time")),
        active_time=as_number(props.get("active_time")),
        scroll_depth=as_number(props.get("scroll_depth")),
        milestone=as_text(props.get("milestone")),
        intent_level=as_text(props.get("intent_level")),
        device_type=as_text(props.get("device_type")),
        time_before_engagement=as_number(props.get("time_before_engagement")),
        session_duration_at_intent=as_number(props.get("session_duration_at_intent")),
        extra={k: v for k, v in props.items() if k not in _CONSUMED_KEYS},
    )


# --- Metric Models ---


@dataclass(frozen=True)
class DailyTrend:
    """Sessions and average session time for one UTC date."""

    date: str
    sessions: int
    average_time: float


@dataclass(frozen=True)
class TopPage:
    page: str
    views: int


@dataclass(frozen=True)
class UserTypes:
    authenticated: int
    anonymous: int


@dataclass(frozen=True)
class BasicMetrics:
    """Headline metrics shown on the property analytics card."""

    total_views: int
    total_sessions: int
    average_time: float
    bounce_rate: float
    conversion_rate: float
    daily_trends: tuple[DailyTrend, ...]
    top_pages: tuple[TopPage, ...]
    user_types: UserTypes


@dataclass(frozen=True)
class ScrollAnalytics:
    average_depth: float
    completion_rate: float
    milestones: dict[str, int]


@dataclass(frozen=True)
class DeviceBreakdown:
    mobile: int
    tablet: int
    desktop: int


@dataclass(frozen=True)
class EngagementMetrics:
    total_engagements: int
    average_time_to_engagement: float
    device_breakdown: DeviceBreakdown


@dataclass(frozen=True)
class IntentSignals:
    total: int
    high: int
    medium: int
    low: int
    average_time_to_intent: float


@dataclass(frozen=True)
class FunnelAnalysis:
    """Sequential stage conversion percentages."""

    view_to_scroll: float
    scroll_to_engagement: float
    engagement_to_contact: float
    overall_conversion: float


@dataclass(frozen=True)
class HourlyBucket:
    hour: int
    sessions: int
    average_time: float


@dataclass(frozen=True)
class WeekdayBucket:
    day: str
    sessions: int
    engagement: int


@dataclass(frozen=True)
class TimeAnalysis:
    hourly_breakdown: tuple[HourlyBucket, ...]
    weekly_trends: tuple[WeekdayBucket, ...]


@dataclass(frozen=True)
class InsightsMetrics:
    """Full insight set for the agent/admin dashboard."""

    total_views: int
    total_sessions: int
    average_time: float
    bounce_rate: float
    conversion_rate: float
    scroll_analytics: ScrollAnalytics
    engagement_metrics: EngagementMetrics
    intent_signals: IntentSignals
    funnel_analysis: FunnelAnalysis
    time_analysis: TimeAnalysis


# --- Input Models ---


@dataclass(frozen=True)
class AnalyticsInput:
    """Input for the basic analytics query."""

    property_id: str
    days: str = "30"


@dataclass(frozen=True)
class InsightsInput:
    """Input for the full insights query."""

    property_id: str
    days: str = "30"
    include_events: str = "true"
    timezone: str | None = None


# --- Output Models ---


@dataclass(frozen=True)
class Period:
    start_date: datetime
    end_date: datetime
    days: int


@dataclass(frozen=True)
class AnalyticsOutput:
    """Output for the basic analytics query."""

    metrics: BasicMetrics | None
    period: Period | None
    source: str = "posthog"
    errors: list[InsightsValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class InsightsOutput:
    """Output for the full insights query."""

    metrics: InsightsMetrics | None
    period: Period | None
    events: tuple[PropertyEvent, ...] | None = None
    source: str = "posthog_insights"
    errors: list[InsightsValidationError] = field(default_factory=list)
    success: bool = True
