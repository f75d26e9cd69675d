"""Tests for Settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from config.settings import Settings


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, settings: Settings) -> None:
        assert settings.trial_days == 7
        assert settings.sign_in_path == "/login"
        assert settings.billing_path == "/plans"
        assert settings.entitlement_exempt_paths == ["/plans", "/settings"]
        assert settings.plans_file.name == "plans.yaml"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRIAL_DAYS", "14")
        monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
        settings = Settings(_env_file=None)
        assert settings.trial_days == 14
        assert settings.supabase_url == "https://abc.supabase.co"

    def test_prod_requires_credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
        with pytest.raises(ValidationError, match="SUPABASE_URL"):
            Settings(_env_file=None, aura_env="prod")

    def test_prod_with_credentials(self) -> None:
        settings = Settings(
            _env_file=None,
            aura_env="prod",
            supabase_url="https://abc.supabase.co",
            supabase_anon_key="anon",
        )
        assert settings.supabase_anon_key.get_secret_value() == "anon"

    def test_negative_trial_rejected(self) -> None:
        with pytest.raises(ValidationError, match="trial_days"):
            Settings(_env_file=None, trial_days=-1)
