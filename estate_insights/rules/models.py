from pydantic import BaseModel, Field, field_validator, model_validator


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class AnalyticsRules(BaseModel):
    provider: str = "posthog"
    default_days: int = Field(30, ge=1)
    max_days: int = Field(365, ge=1)
    bounce_threshold_seconds: float = Field(30, gt=0)
    conversion_keywords: list[str] = ["visit_request", "favorite", "contact"]
    display_timezone: str = "UTC"
    allowed_roles: list[str] = ["ADMIN", "AGENT"]
    # Seed file for the memory provider (YAML or JSON list of raw events)
    memory_events_path: str | None = None

    @field_validator("provider")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        if v not in ("posthog", "memory"):
            raise ValueError("provider must be 'posthog' or 'memory'")
        return v

    @field_validator("display_timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def _default_within_max(self) -> "AnalyticsRules":
        if self.default_days > self.max_days:
            raise ValueError(
                f"default_days ({self.default_days}) must not exceed max_days ({self.max_days})"
            )
        return self


class PostHogRules(BaseModel):
    host: str = "https://us.i.posthog.com"
    page_size: int = Field(1000, ge=1, le=10000)
    max_pages: int = Field(5, ge=1)
    timeout_seconds: float = Field(10, gt=0)


class OpsRules(BaseModel):
    required_env: list[str] = []


class Rules(BaseModel):
    project: ProjectRules
    analytics: AnalyticsRules
    posthog: PostHogRules = Field(default_factory=PostHogRules)
    ops: OpsRules = Field(default_factory=OpsRules)
