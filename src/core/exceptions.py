"""Custom exception hierarchy for Aura Club."""

from __future__ import annotations

from typing import Any


class AuraBaseError(Exception):
    """Base exception for all Aura Club errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = context or {}


# ── Identity Layer ───────────────────────────────────────────────

class IdentityServiceError(AuraBaseError):
    """The auth service call failed (network, 5xx, malformed payload)."""


class NotAuthenticatedError(AuraBaseError):
    """Operation requires a signed-in identity and there is none."""


# ── Tenancy Layer ────────────────────────────────────────────────

class TenantDataError(AuraBaseError):
    """Tenant, membership or profile read/write failed."""


class TenantCreationError(AuraBaseError):
    """Creating a tenant was rejected (slug conflict, RPC error)."""


class TenantSelectionError(AuraBaseError):
    """Persisting the current tenant selection failed."""


# ── Billing Layer ────────────────────────────────────────────────

class BillingError(AuraBaseError):
    """Simulated subscription update failed."""


class UnknownPlanError(BillingError):
    """Requested plan id is not in the catalog."""
