"""System-wide constants. All magic numbers and strings live here."""

from __future__ import annotations

# ── Trial ────────────────────────────────────────────────────────
TRIAL_DAYS = 7
SECONDS_PER_DAY = 86_400

# ── Subscription Status Values ───────────────────────────────────
SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_TRIAL = "trial"

# ── Navigation ───────────────────────────────────────────────────
SIGN_IN_PATH = "/login"
BILLING_PATH = "/plans"
ENTITLEMENT_EXEMPT_PATHS: tuple[str, ...] = ("/plans", "/settings")

# ── Auth Storage ─────────────────────────────────────────────────
AUTH_STORAGE_KEY = "aura-club-auth"
AUTH_STORAGE_PREFIX = "sb-"

# ── Slugs ────────────────────────────────────────────────────────
SLUG_SEPARATOR = "-"
SLUG_FALLBACK_PREFIX = "club"

# ── Supabase Tables / RPCs ───────────────────────────────────────
TABLE_TENANTS = "tenants"
TABLE_TENANT_USERS = "tenant_users"
TABLE_PROFILES = "profiles"
RPC_ROLE_STATUS = "get_user_role_status"
RPC_CREATE_TENANT = "create_own_tenant"
