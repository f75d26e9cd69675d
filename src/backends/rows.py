"""Pydantic V2 models for rows returned by the hosted data service."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.core.types import Membership, Tenant, TenantRole


class TenantRow(BaseModel):
    """``tenants`` table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    slug: str = ""
    logo_url: str | None = None
    created_at: datetime
    subscription_status: str | None = None
    subscription_plan: str | None = None

    def to_tenant(self, role: TenantRole | None = None, is_owner: bool = False) -> Tenant:
        return Tenant(
            id=self.id,
            name=self.name,
            slug=self.slug,
            created_at=self.created_at,
            subscription_status=self.subscription_status,
            subscription_plan=self.subscription_plan,
            logo_url=self.logo_url,
            role=role,
            is_owner=is_owner,
        )


class MembershipRow(BaseModel):
    """``tenant_users`` join row, optionally with the embedded tenant."""

    model_config = ConfigDict(extra="ignore")

    tenant_id: str
    user_id: str
    role: str | None = None
    is_owner: bool | None = False
    permissions: dict[str, bool] | None = None
    tenant: TenantRow | None = None

    def to_membership(self) -> Membership:
        return Membership(
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            role=TenantRole.parse(self.role),
            is_owner=bool(self.is_owner),
            permissions=self.permissions,
        )

    def to_tenant(self) -> Tenant | None:
        """The embedded tenant decorated with this membership's role."""
        if self.tenant is None:
            return None
        return self.tenant.to_tenant(role=TenantRole.parse(self.role), is_owner=bool(self.is_owner))


class ProfileRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    current_tenant_id: str | None = None


class RoleStatus(BaseModel):
    """Payload of the ``get_user_role_status`` RPC."""

    model_config = ConfigDict(extra="ignore")

    is_super_admin: bool = Field(default=False)
