import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from estate_insights.adapters.clock import SystemClock
from estate_insights.adapters.posthog import InMemoryEventFetcher, PostHogEventFetcher
from estate_insights.api.auth_utils import decode_access_token
from estate_insights.components.insights import EventFetcherPort
from estate_insights.rules.loader import load_rules
from estate_insights.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.rules_path = Path(os.environ.get("ESTATE_RULES_PATH", self.base_dir / "rules.yaml"))
        self.posthog_api_key = os.environ.get("POSTHOG_PERSONAL_API_KEY")
        self.posthog_project_id = os.environ.get("POSTHOG_PROJECT_ID")
        self.posthog_host = os.environ.get("POSTHOG_HOST")


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def _load_rules_cached(path: Path) -> Rules:
    return load_rules(path)


def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return _load_rules_cached(settings.rules_path)


class InsightsRulesAdapter:
    """Adapter to map generic Rules to the insights component RulesPort."""

    def __init__(self, rules: Rules):
        self._rules = rules.analytics

    def get_bounce_threshold_seconds(self) -> float:
        return self._rules.bounce_threshold_seconds

    def get_conversion_keywords(self) -> tuple[str, ...]:
        return tuple(self._rules.conversion_keywords)

    def get_display_timezone(self) -> str:
        return self._rules.display_timezone

    def get_default_days(self) -> int:
        return self._rules.default_days

    def get_max_days(self) -> int:
        return self._rules.max_days


def get_insights_rules(rules: Rules = Depends(get_rules)) -> InsightsRulesAdapter:
    return InsightsRulesAdapter(rules)


# Time adapter for deterministic time operations
_clock_instance: SystemClock | None = None


def get_clock() -> SystemClock:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


# --- Event Fetchers ---
_memory_fetcher_instance: InMemoryEventFetcher | None = None


def get_memory_fetcher(seed_path: Path | None = None) -> InMemoryEventFetcher:
    """
    Get in-memory fetcher singleton (provider: memory).

    Seeded once from seed_path when given; empty otherwise.
    """
    global _memory_fetcher_instance
    if _memory_fetcher_instance is None:
        if seed_path is not None:
            _memory_fetcher_instance = InMemoryEventFetcher.from_file(seed_path)
        else:
            _memory_fetcher_instance = InMemoryEventFetcher()
    return _memory_fetcher_instance


def get_event_fetcher(
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
) -> EventFetcherPort:
    if rules.analytics.provider == "memory":
        seed = rules.analytics.memory_events_path
        return get_memory_fetcher(settings.base_dir / seed if seed else None)
    return PostHogEventFetcher(
        api_key=settings.posthog_api_key,
        project_id=settings.posthog_project_id,
        host=settings.posthog_host or rules.posthog.host,
        page_size=rules.posthog.page_size,
        max_pages=rules.posthog.max_pages,
        timeout_seconds=rules.posthog.timeout_seconds,
    )


# --- Auth ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, taken from token claims."""

    user_id: str
    role: str


async def get_current_user(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Principal:
    # 1. Try Cookie first (HttpOnly)
    cookie_token = request.cookies.get("access_token")
    if cookie_token and cookie_token.startswith("Bearer "):
        token = cookie_token.split(" ")[1]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 2. Decode
    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None or not isinstance(user_id, str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    role = payload.get("role")
    return Principal(user_id=user_id, role=str(role).upper() if role else "")


def require_analytics_access(
    user: Principal = Depends(get_current_user),
    rules: Rules = Depends(get_rules),
) -> Principal:
    """Only roles listed in analytics.allowed_roles may read property analytics."""
    allowed = {r.upper() for r in rules.analytics.allowed_roles}
    if user.role not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )
    return user
