"""
Insights component - Property analytics and dashboard insights.
"""

from ._aggregate import (
    AggregateConfig,
    average_session_time,
    bounce_rate,
    build_basic_metrics,
    build_insights,
    conversion_rate,
    count_sessions,
    count_views,
    daily_trends,
    engagement_metrics,
    funnel_analysis,
    intent_signals,
    percentage,
    round_basic_metrics,
    round_half_up,
    round_insights,
    scroll_analytics,
    time_analysis,
    user_types,
)
from .component import (
    run,
    run_analytics,
    run_insights,
    validate_days,
    validate_flag,
    validate_timezone,
)
from .models import (
    AnalyticsInput,
    AnalyticsOutput,
    BasicMetrics,
    DailyTrend,
    InsightsInput,
    InsightsMetrics,
    InsightsOutput,
    InsightsValidationError,
    Period,
    PropertyEvent,
    canonical_event_name,
    parse_event,
)
from .ports import (
    AnalyticsConfigError,
    AnalyticsUpstreamError,
    EventFetcherPort,
    InsightsRulesPort,
    TimePort,
)

__all__ = [
    # Entry points
    "run",
    "run_analytics",
    "run_insights",
    # Validation
    "validate_days",
    "validate_flag",
    "validate_timezone",
    # Aggregation
    "AggregateConfig",
    "average_session_time",
    "bounce_rate",
    "build_basic_metrics",
    "build_insights",
    "conversion_rate",
    "count_sessions",
    "count_views",
    "daily_trends",
    "engagement_metrics",
    "funnel_analysis",
    "intent_signals",
    "percentage",
    "round_basic_metrics",
    "round_half_up",
    "round_insights",
    "scroll_analytics",
    "time_analysis",
    "user_types",
    # Models
    "AnalyticsInput",
    "AnalyticsOutput",
    "BasicMetrics",
    "DailyTrend",
    "InsightsInput",
    "InsightsMetrics",
    "InsightsOutput",
    "InsightsValidationError",
    "Period",
    "PropertyEvent",
    "canonical_event_name",
    "parse_event",
    # Ports
    "AnalyticsConfigError",
    "AnalyticsUpstreamError",
    "EventFetcherPort",
    "InsightsRulesPort",
    "TimePort",
]
