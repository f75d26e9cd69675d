"""Aura Club global settings — loaded from environment variables via .env file."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """All configuration flows through this class. Never read env vars directly."""

    model_config = SettingsConfigDict(
        env_file=PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── Environment ──────────────────────────────────────────────
    aura_env: Literal["dev", "prod"] = "dev"

    # ── Supabase ─────────────────────────────────────────────────
    supabase_url: str = ""
    supabase_anon_key: SecretStr = SecretStr("")
    auth_storage_key: str = "aura-club-auth"
    password_reset_redirect_url: str = "http://localhost:5173/reset-password"

    # ── Trial & Billing ──────────────────────────────────────────
    trial_days: int = 7
    plans_file: Path = PROJECT_ROOT / "config" / "plans.yaml"

    # ── Navigation ───────────────────────────────────────────────
    sign_in_path: str = "/login"
    billing_path: str = "/plans"
    entitlement_exempt_paths: list[str] = ["/plans", "/settings"]

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="after")
    def _check_prod_credentials(self) -> "Settings":
        """Refuse to run in production without a configured auth service."""
        if self.aura_env == "prod":
            if not self.supabase_url or not self.supabase_anon_key.get_secret_value():
                msg = (
                    "SUPABASE_URL and SUPABASE_ANON_KEY must be set "
                    "in production."
                )
                raise ValueError(msg)
        if self.trial_days < 0:
            msg = f"trial_days cannot be negative: {self.trial_days}"
            raise ValueError(msg)
        return self


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Singleton settings loader — reads .env once, reuses thereafter."""
    global _settings_instance  # noqa: PLW0603
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
