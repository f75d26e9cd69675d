"""Abstract base classes — every backend must implement these interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from src.core.types import AuthResult, AuthSession, Membership, SessionEvent, Tenant, TenantRole

SessionListener = Callable[[SessionEvent, AuthSession | None], None]
Unsubscribe = Callable[[], None]


class BaseIdentityService(ABC):
    """Interface for the hosted auth service."""

    @abstractmethod
    async def get_current_session(self) -> AuthSession | None:
        """Return the persisted session, if any."""
        ...

    @abstractmethod
    def on_session_change(self, listener: SessionListener) -> Unsubscribe:
        """Register for sign-in/sign-out/refresh events. Returns an unsubscribe hook."""
        ...

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        ...

    @abstractmethod
    async def sign_up(
        self, email: str, password: str, metadata: dict[str, str] | None = None,
    ) -> AuthResult:
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        """Revoke the remote session. May raise IdentityServiceError."""
        ...

    @abstractmethod
    async def reset_password(self, email: str, redirect_to: str) -> AuthResult:
        ...

    @abstractmethod
    async def get_user_role_status(self) -> dict[str, bool]:
        """Privileged RPC; returns at least ``{"is_super_admin": bool}``."""
        ...

    async def clear_local_session(self) -> None:
        """Drop cached session artifacts without calling the server."""
        return None


class BaseTenantStore(ABC):
    """Interface for tenant, membership and profile persistence."""

    @abstractmethod
    async def list_memberships(self, user_id: str) -> list[Tenant]:
        """Tenants the user belongs to, in the store's stable order."""
        ...

    @abstractmethod
    async def get_current_tenant_id(self, user_id: str) -> str | None:
        ...

    @abstractmethod
    async def set_current_tenant_id(self, user_id: str, tenant_id: str) -> None:
        ...

    @abstractmethod
    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        ...

    @abstractmethod
    async def create_tenant(self, user_id: str, name: str, slug: str) -> Tenant:
        """Create a tenant owned by ``user_id`` and make it their current one."""
        ...

    @abstractmethod
    async def get_membership(self, tenant_id: str, user_id: str) -> Membership | None:
        ...

    @abstractmethod
    async def update_tenant(
        self,
        tenant_id: str,
        *,
        name: str | None = None,
        logo_url: str | None = None,
    ) -> Tenant:
        """Change the fields that are not None. Raises TenantDataError if the tenant is unknown."""
        ...

    # ── Members ──────────────────────────────────────────────────

    @abstractmethod
    async def list_members(self, tenant_id: str) -> list[Membership]:
        ...

    @abstractmethod
    async def add_member(
        self,
        tenant_id: str,
        user_id: str,
        role: TenantRole = TenantRole.MEMBER,
        permissions: dict[str, bool] | None = None,
    ) -> Membership:
        """Grant ``user_id`` a non-owner membership of ``tenant_id``."""
        ...

    @abstractmethod
    async def remove_member(self, tenant_id: str, user_id: str) -> None:
        """Revoke a membership. Removing a non-member is a no-op."""
        ...

    @abstractmethod
    async def update_member_role(
        self,
        tenant_id: str,
        user_id: str,
        role: TenantRole,
        permissions: dict[str, bool] | None = None,
    ) -> None:
        """Set the role; ``permissions`` replaces the stored overrides when given."""
        ...


class BaseBillingService(ABC):
    """Interface for the (simulated) subscription endpoint."""

    @abstractmethod
    async def update_subscription(self, tenant_id: str, plan_id: str) -> None:
        """Mark the tenant's subscription active on ``plan_id``."""
        ...
