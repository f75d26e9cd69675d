"""System-wide shared types — the single source of truth for all data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


# ── Enums ────────────────────────────────────────────────────────

class TenantRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"

    @classmethod
    def parse(cls, value: str | None) -> "TenantRole":
        """Unknown or missing roles degrade to MEMBER."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.MEMBER


class SessionEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class EntitlementStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"


class GateOutcome(str, Enum):
    SHOW_LOADING = "show_loading"
    REDIRECT_TO_SIGN_IN = "redirect_to_sign_in"
    REDIRECT_TO_BILLING = "redirect_to_billing"
    RENDER = "render"


# ── Identity ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Identity:
    """An authenticated user as reported by the auth service."""

    id: str
    email: str
    metadata: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def display_name(self) -> str:
        return self.metadata.get("full_name") or self.email


@dataclass(frozen=True)
class AuthSession:
    """A persisted auth session: tokens plus the identity they belong to."""

    identity: Identity
    access_token: str = ""
    refresh_token: str = ""
    expires_at: datetime | None = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a user-initiated auth operation (sign-in, sign-up, reset)."""

    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ── Tenancy ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Tenant:
    """A club. ``role``/``is_owner`` are filled when listed via a membership."""

    id: str
    name: str
    slug: str
    created_at: datetime
    subscription_status: str | None = None
    subscription_plan: str | None = None
    logo_url: str | None = None
    role: TenantRole | None = None
    is_owner: bool = False

    def __post_init__(self) -> None:
        if not self.id:
            msg = "tenant id cannot be empty"
            raise ValueError(msg)
        if self.created_at.tzinfo is None:
            # Naive timestamps from the store are UTC.
            object.__setattr__(
                self, "created_at", self.created_at.replace(tzinfo=timezone.utc),
            )


@dataclass(frozen=True)
class Membership:
    """Row of the identity <-> tenant join table."""

    tenant_id: str
    user_id: str
    role: TenantRole = TenantRole.MEMBER
    is_owner: bool = False
    permissions: dict[str, bool] | None = None


# ── Derived State ────────────────────────────────────────────────

@dataclass(frozen=True)
class EntitlementState:
    """Trial/subscription standing of a tenant at a given instant."""

    trial_days_remaining: int
    is_trial_expired: bool
    has_active_subscription: bool
    status: EntitlementStatus
    trial_ends_at: datetime

    def __post_init__(self) -> None:
        if self.trial_days_remaining < 0:
            msg = f"trial_days_remaining cannot be negative: {self.trial_days_remaining}"
            raise ValueError(msg)


@dataclass(frozen=True)
class SessionState:
    identity: Identity | None = None
    loading: bool = True
    is_elevated: bool = False


@dataclass(frozen=True)
class TenancyState:
    current_tenant: Tenant | None = None
    tenants: tuple[Tenant, ...] = ()
    loading: bool = True


@dataclass(frozen=True)
class EntitlementView:
    entitlement: EntitlementState | None = None
    loading: bool = True

    @property
    def can_access_app(self) -> bool:
        """Fail-open access decision.

        Loading, or loaded with no result, grants access. Billing-sensitive
        callers must check ``entitlement.status`` themselves.
        """
        if self.loading or self.entitlement is None:
            return True
        return self.entitlement.status in (EntitlementStatus.TRIAL, EntitlementStatus.ACTIVE)


@dataclass(frozen=True)
class GateDecision:
    """What the route gate wants the shell to do for a requested path."""

    outcome: GateOutcome
    path: str
    redirect_to: str | None = None
    next_path: str | None = None

    @property
    def renders(self) -> bool:
        return self.outcome is GateOutcome.RENDER
