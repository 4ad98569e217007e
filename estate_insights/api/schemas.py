from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Shared ---
class PeriodModel(CamelModel):
    start_date: datetime
    end_date: datetime
    days: int


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: str | None = None


# --- Basic analytics ---
class DailyTrendModel(CamelModel):
    date: str
    sessions: int
    average_time: float


class TopPageModel(CamelModel):
    page: str
    views: int


class UserTypesModel(CamelModel):
    authenticated: int
    anonymous: int


class BasicMetricsModel(CamelModel):
    total_views: int
    total_sessions: int
    average_time: float
    bounce_rate: float
    conversion_rate: float
    daily_trends: list[DailyTrendModel]
    top_pages: list[TopPageModel]
    user_types: UserTypesModel


class AnalyticsResponse(CamelModel):
    success: bool = True
    data: BasicMetricsModel
    period: PeriodModel
    source: str


# --- Insights ---
class ScrollAnalyticsModel(CamelModel):
    average_depth: float
    completion_rate: float
    # Keys are milestone labels ("25%"), left as-is
    milestones: dict[str, int]


class DeviceBreakdownModel(CamelModel):
    mobile: int
    tablet: int
    desktop: int


class EngagementMetricsModel(CamelModel):
    total_engagements: int
    average_time_to_engagement: float
    device_breakdown: DeviceBreakdownModel


class IntentSignalsModel(CamelModel):
    total: int
    high: int
    medium: int
    low: int
    average_time_to_intent: float


class FunnelAnalysisModel(CamelModel):
    view_to_scroll: float
    scroll_to_engagement: float
    engagement_to_contact: float
    overall_conversion: float


class HourlyBucketModel(CamelModel):
    hour: int
    sessions: int
    average_time: float


class WeekdayBucketModel(CamelModel):
    day: str
    sessions: int
    engagement: int


class TimeAnalysisModel(CamelModel):
    hourly_breakdown: list[HourlyBucketModel]
    weekly_trends: list[WeekdayBucketModel]


class InsightsMetricsModel(CamelModel):
    total_views: int
    total_sessions: int
    average_time: float
    bounce_rate: float
    conversion_rate: float
    scroll_analytics: ScrollAnalyticsModel
    engagement_metrics: EngagementMetricsModel
    intent_signals: IntentSignalsModel
    funnel_analysis: FunnelAnalysisModel
    time_analysis: TimeAnalysisModel


class InsightsResponse(CamelModel):
    success: bool = True
    data: InsightsMetricsModel
    events: list[dict[str, Any]] | None = None
    period: PeriodModel
    source: str
