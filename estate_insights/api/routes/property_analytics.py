"""
Property Analytics API.

Read-only endpoints returning PostHog-derived analytics for one property.

Key behaviors:
- Callers must be authenticated and hold an analytics role
- `days` is validated before the provider is contacted
- Provider misconfiguration -> 500, provider failure -> 502
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from estate_insights.adapters.clock import SystemClock
from estate_insights.api.deps import (
    InsightsRulesAdapter,
    Principal,
    get_clock,
    get_event_fetcher,
    get_insights_rules,
    require_analytics_access,
)
from estate_insights.api.schemas import (
    AnalyticsResponse,
    BasicMetricsModel,
    ErrorDetail,
    InsightsMetricsModel,
    InsightsResponse,
    PeriodModel,
)
from estate_insights.components.insights import (
    AnalyticsInput,
    EventFetcherPort,
    InsightsInput,
    InsightsValidationError,
    Period,
    run_analytics,
    run_insights,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Helper Functions ---


_ERROR_STATUS = {
    "invalid_params": status.HTTP_400_BAD_REQUEST,
    "upstream_config_missing": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "upstream_error": status.HTTP_502_BAD_GATEWAY,
}

_ERROR_MESSAGES = {
    "invalid_params": "Invalid parameters",
    "upstream_config_missing": "Analytics configuration incomplete",
    "upstream_error": "Failed to retrieve analytics data",
}


def raise_for_errors(errors: list[InsightsValidationError]) -> None:
    """Translate component error records into an HTTPException."""
    if not errors:
        return
    code = errors[0].code
    raise HTTPException(
        status_code=_ERROR_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail={
            "error": _ERROR_MESSAGES.get(code, "Internal server error"),
            "details": [
                ErrorDetail(code=e.code, message=e.message, field=e.field_name).model_dump()
                for e in errors
            ],
        },
    )


def _days_or_default(days: str | None, rules: InsightsRulesAdapter) -> str:
    return days if days and days.strip() else str(rules.get_default_days())


def _period_model(period: Period) -> PeriodModel:
    return PeriodModel(
        start_date=period.start_date,
        end_date=period.end_date,
        days=period.days,
    )


# --- Routes ---


@router.get("/{property_id}/analytics", response_model=AnalyticsResponse)
def get_property_analytics(
    property_id: str,
    days: str | None = Query(None, description="Trailing window in days"),
    user: Principal = Depends(require_analytics_access),
    fetcher: EventFetcherPort = Depends(get_event_fetcher),
    clock: SystemClock = Depends(get_clock),
    rules: InsightsRulesAdapter = Depends(get_insights_rules),
) -> AnalyticsResponse:
    """Basic metrics with daily trends and audience split."""
    logger.info(
        "Analytics requested for property %s by %s (%s days)", property_id, user.user_id, days
    )
    out = run_analytics(
        AnalyticsInput(property_id=property_id, days=_days_or_default(days, rules)),
        fetcher=fetcher,
        time_port=clock,
        rules=rules,
    )
    raise_for_errors(out.errors)
    if out.metrics is None or out.period is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return AnalyticsResponse(
        data=BasicMetricsModel.model_validate(asdict(out.metrics)),
        period=_period_model(out.period),
        source=out.source,
    )


@router.get(
    "/{property_id}/insights",
    response_model=InsightsResponse,
    response_model_exclude_none=True,
)
def get_property_insights(
    property_id: str,
    days: str | None = Query(None, description="Trailing window in days"),
    include_events: str = Query("true", alias="includeEvents"),
    timezone: str | None = Query(None, description="IANA zone for hour/weekday buckets"),
    user: Principal = Depends(require_analytics_access),
    fetcher: EventFetcherPort = Depends(get_event_fetcher),
    clock: SystemClock = Depends(get_clock),
    rules: InsightsRulesAdapter = Depends(get_insights_rules),
) -> InsightsResponse:
    """Scroll, engagement, intent, funnel and temporal insights."""
    logger.info(
        "Insights requested for property %s by %s (%s days)", property_id, user.user_id, days
    )
    out = run_insights(
        InsightsInput(
            property_id=property_id,
            days=_days_or_default(days, rules),
            include_events=include_events,
            timezone=timezone,
        ),
        fetcher=fetcher,
        time_port=clock,
        rules=rules,
    )
    raise_for_errors(out.errors)
    if out.metrics is None or out.period is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return InsightsResponse(
        data=InsightsMetricsModel.model_validate(asdict(out.metrics)),
        events=[e.to_payload() for e in out.events] if out.events is not None else None,
        period=_period_model(out.period),
        source=out.source,
    )
