import logging
from pathlib import Path

import pytest

from estate_insights.app_shell.config import validate_ops_rules
from estate_insights.rules.models import Rules


def with_required(rules: Rules, names: list[str]) -> Rules:
    return rules.model_copy(update={"ops": rules.ops.model_copy(update={"required_env": names})})


class TestValidateOpsRules:
    def test_missing_required_env_raises(
        self, rules: Rules, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("ESTATE_SECRET_KEY", raising=False)

        with pytest.raises(RuntimeError, match="ESTATE_SECRET_KEY"):
            validate_ops_rules(with_required(rules, ["ESTATE_SECRET_KEY"]))

    def test_required_env_present(
        self, rules: Rules, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ESTATE_SECRET_KEY", "s3cret")
        monkeypatch.setenv("POSTHOG_PERSONAL_API_KEY", "phx")
        monkeypatch.setenv("POSTHOG_PROJECT_ID", "42")

        validate_ops_rules(with_required(rules, ["ESTATE_SECRET_KEY"]))

    def test_missing_posthog_credentials_only_warn(
        self,
        rules: Rules,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        monkeypatch.delenv("POSTHOG_PERSONAL_API_KEY", raising=False)
        monkeypatch.setenv("POSTHOG_PROJECT_ID", "42")

        with caplog.at_level(logging.WARNING):
            validate_ops_rules(rules)

        assert "POSTHOG_PERSONAL_API_KEY" in caplog.text
        assert "POSTHOG_PROJECT_ID" not in caplog.text

    def test_memory_provider_needs_no_credentials(
        self,
        rules: Rules,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        monkeypatch.delenv("POSTHOG_PERSONAL_API_KEY", raising=False)
        monkeypatch.delenv("POSTHOG_PROJECT_ID", raising=False)
        memory = rules.model_copy(
            update={"analytics": rules.analytics.model_copy(update={"provider": "memory"})}
        )

        with caplog.at_level(logging.WARNING):
            validate_ops_rules(memory)

        assert "PostHog credentials" not in caplog.text

    def test_memory_provider_without_seed_warns(
        self, rules: Rules, caplog: pytest.LogCaptureFixture
    ) -> None:
        memory = rules.model_copy(
            update={"analytics": rules.analytics.model_copy(update={"provider": "memory"})}
        )

        with caplog.at_level(logging.WARNING):
            validate_ops_rules(memory)

        assert "memory_events_path" in caplog.text

    def test_memory_provider_missing_seed_file_raises(
        self, rules: Rules, tmp_path: Path
    ) -> None:
        memory = rules.model_copy(
            update={
                "analytics": rules.analytics.model_copy(
                    update={
                        "provider": "memory",
                        "memory_events_path": str(tmp_path / "absent.yaml"),
                    }
                )
            }
        )

        with pytest.raises(RuntimeError, match="absent.yaml"):
            validate_ops_rules(memory)
