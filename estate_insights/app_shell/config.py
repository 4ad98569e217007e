import logging
import os
from pathlib import Path

from estate_insights.rules.models import Rules

logger = logging.getLogger(__name__)

POSTHOG_ENV = ("POSTHOG_PERSONAL_API_KEY", "POSTHOG_PROJECT_ID")


def validate_ops_rules(rules: Rules) -> None:
    """
    Validate operational requirements before startup.

    Raises RuntimeError when a required environment variable is missing.
    Missing PostHog credentials only warn: the analytics routes report them
    per request so the dashboard can show a "configuration pending" state.
    """
    missing = [name for name in rules.ops.required_env if not os.environ.get(name)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    if rules.analytics.provider == "posthog":
        absent = [name for name in POSTHOG_ENV if not os.environ.get(name)]
        if absent:
            logger.warning(
                "PostHog credentials not set (%s); analytics requests will fail",
                ", ".join(absent),
            )

    if rules.analytics.provider == "memory":
        seed = rules.analytics.memory_events_path
        if seed is None:
            logger.warning("Memory provider has no memory_events_path; analytics will be empty")
        elif not Path(seed).exists():
            raise RuntimeError(f"Event seed file not found at: {seed}")

    logger.info("Configuration validated.")
