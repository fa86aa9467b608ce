"""Tests for configuration validation."""

import pytest
from pydantic import ValidationError

from bestbefore.core.config import Constants, Settings


def test_require_credential_with_valid_value() -> None:
    """Test require_credential returns value when credential is set."""
    settings = Settings(supabase_anon_key="anon-key")

    assert settings.require_credential("supabase_anon_key", "Supabase") == "anon-key"


@pytest.mark.parametrize("value", [None, ""])
def test_require_credential_missing_raises_error(value: str | None) -> None:
    """Test require_credential raises ValueError naming the environment variable."""
    settings = Settings(supabase_anon_key=value)

    with pytest.raises(ValueError, match="SUPABASE_ANON_KEY"):
        settings.require_credential("supabase_anon_key", "Supabase")


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test behaviour defaults when nothing is configured."""
    for name in ("DEFAULT_REMINDER_DAYS", "SYNC_INTERVAL_MINUTES", "DEAD_LETTER_PERMANENT_ERRORS", "REDIS_URL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.default_reminder_days == 3
    assert settings.sync_interval_minutes == 15
    assert settings.dead_letter_permanent_errors is True
    assert settings.redis_url is None


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEFAULT_REMINDER_DAYS", "5")
    monkeypatch.setenv("DEAD_LETTER_PERMANENT_ERRORS", "false")

    settings = Settings(_env_file=None)

    assert settings.default_reminder_days == 5
    assert settings.dead_letter_permanent_errors is False


def test_negative_reminder_days_rejected() -> None:
    with pytest.raises(ValidationError, match="default_reminder_days"):
        Settings(default_reminder_days=-1)


def test_reminder_constants() -> None:
    assert Constants.REMINDER_HOURS == (12, 20)
    assert Constants.SYNC_QUEUE_KEY == "@BestBefore:syncQueue"
