"""Supabase-backed implementation of the identity, tenant and billing interfaces.

Uses the async supabase-py client. Every row coming back from PostgREST is
validated through the pydantic models in ``src.backends.rows`` before it is
turned into a domain type; transport and validation failures are wrapped in
the matching ``AuraBaseError`` subclass.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from supabase import AsyncClient, acreate_client

from config.settings import Settings, get_settings
from src.backends.rows import MembershipRow, ProfileRow, RoleStatus, TenantRow
from src.core.constants import (
    RPC_CREATE_TENANT,
    RPC_ROLE_STATUS,
    SUBSCRIPTION_ACTIVE,
    TABLE_PROFILES,
    TABLE_TENANT_USERS,
    TABLE_TENANTS,
)
from src.core.exceptions import (
    BillingError,
    IdentityServiceError,
    TenantCreationError,
    TenantDataError,
)
from src.core.interfaces import (
    BaseBillingService,
    BaseIdentityService,
    BaseTenantStore,
    SessionListener,
    Unsubscribe,
)
from src.core.logging import get_logger
from src.core.types import (
    AuthResult,
    AuthSession,
    Identity,
    Membership,
    SessionEvent,
    Tenant,
    TenantRole,
)

log = get_logger(__name__)


def _to_session(raw: Any) -> AuthSession | None:
    """Convert a supabase auth Session into an AuthSession."""
    if raw is None or getattr(raw, "user", None) is None:
        return None
    user = raw.user
    expires_at = getattr(raw, "expires_at", None)
    return AuthSession(
        identity=Identity(
            id=str(user.id),
            email=user.email or "",
            metadata={k: str(v) for k, v in (user.user_metadata or {}).items()},
        ),
        access_token=raw.access_token or "",
        refresh_token=raw.refresh_token or "",
        expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc) if expires_at else None,
    )


class SupabaseBackend(BaseIdentityService, BaseTenantStore, BaseBillingService):
    """Talks to Supabase Auth, the ``tenants``/``tenant_users``/``profiles`` tables and RPCs."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    # ── BaseIdentityService ──────────────────────────────────────

    async def get_current_session(self) -> AuthSession | None:
        try:
            raw = await self._client.auth.get_session()
        except Exception as exc:
            msg = "Could not read the persisted session"
            raise IdentityServiceError(msg) from exc
        return _to_session(raw)

    def on_session_change(self, listener: SessionListener) -> Unsubscribe:
        def _callback(event: str, raw: Any) -> None:
            try:
                session_event = SessionEvent(event)
            except ValueError:
                log.debug("auth_event_ignored", auth_event=event)
                return
            listener(session_event, _to_session(raw))

        subscription = self._client.auth.on_auth_state_change(_callback)
        return subscription.unsubscribe

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        try:
            await self._client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:
            raise IdentityServiceError(str(exc), {"email": email}) from exc
        return AuthResult()

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, str] | None = None,
    ) -> AuthResult:
        try:
            await self._client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata or {}},
            })
        except Exception as exc:
            raise IdentityServiceError(str(exc), {"email": email}) from exc
        return AuthResult()

    async def sign_out(self) -> None:
        try:
            await self._client.auth.sign_out()
        except Exception as exc:
            msg = "Remote sign-out failed"
            raise IdentityServiceError(msg) from exc

    async def reset_password(self, email: str, redirect_to: str) -> AuthResult:
        try:
            await self._client.auth.reset_password_for_email(email, {"redirect_to": redirect_to})
        except Exception as exc:
            raise IdentityServiceError(str(exc), {"email": email}) from exc
        return AuthResult()

    async def get_user_role_status(self) -> dict[str, bool]:
        try:
            response = await self._client.rpc(RPC_ROLE_STATUS).execute()
            status = RoleStatus.model_validate(response.data or {})
        except Exception as exc:
            msg = "Role status RPC failed"
            raise IdentityServiceError(msg) from exc
        return {"is_super_admin": status.is_super_admin}

    async def clear_local_session(self) -> None:
        # Local scope revokes only this device's refresh token and always drops stored tokens.
        try:
            await self._client.auth.sign_out({"scope": "local"})
        except Exception as exc:
            msg = "Could not clear the local session"
            raise IdentityServiceError(msg) from exc

    # ── BaseTenantStore ──────────────────────────────────────────

    async def list_memberships(self, user_id: str) -> list[Tenant]:
        try:
            response = await (
                self._client.table(TABLE_TENANT_USERS)
                .select("*, tenant:tenants(*)")
                .eq("user_id", user_id)
                .execute()
            )
            rows = [MembershipRow.model_validate(row) for row in response.data or []]
        except Exception as exc:
            msg = "Could not list memberships"
            raise TenantDataError(msg, {"user_id": user_id}) from exc

        tenants = []
        for row in rows:
            tenant = row.to_tenant()
            if tenant is None:
                # RLS hides the tenant row; the membership is unusable.
                log.warning("membership_without_tenant", tenant_id=row.tenant_id, user_id=user_id)
                continue
            tenants.append(tenant)
        return tenants

    async def get_current_tenant_id(self, user_id: str) -> str | None:
        try:
            response = await (
                self._client.table(TABLE_PROFILES)
                .select("current_tenant_id")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            msg = "Could not read profile"
            raise TenantDataError(msg, {"user_id": user_id}) from exc

        if not response.data:
            return None
        return ProfileRow.model_validate(response.data[0]).current_tenant_id

    async def set_current_tenant_id(self, user_id: str, tenant_id: str) -> None:
        try:
            await (
                self._client.table(TABLE_PROFILES)
                .update({"current_tenant_id": tenant_id})
                .eq("id", user_id)
                .execute()
            )
        except Exception as exc:
            msg = "Could not persist current tenant"
            raise TenantDataError(msg, {"user_id": user_id, "tenant_id": tenant_id}) from exc

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        try:
            response = await (
                self._client.table(TABLE_TENANTS)
                .select("*")
                .eq("id", tenant_id)
                .limit(1)
                .execute()
            )
            rows = [TenantRow.model_validate(row) for row in response.data or []]
        except Exception as exc:
            msg = "Could not read tenant"
            raise TenantDataError(msg, {"tenant_id": tenant_id}) from exc
        return rows[0].to_tenant() if rows else None

    async def create_tenant(self, user_id: str, name: str, slug: str) -> Tenant:
        try:
            response = await self._client.rpc(
                RPC_CREATE_TENANT, {"p_name": name, "p_slug": slug},
            ).execute()
        except Exception as exc:
            msg = f"Tenant creation RPC failed for slug {slug!r}"
            raise TenantCreationError(msg, {"slug": slug}) from exc

        # The RPC answers with either the new row or its bare id.
        data = response.data
        tenant_id = data.get("id") if isinstance(data, dict) else data
        if not tenant_id:
            msg = "Tenant creation RPC returned no id"
            raise TenantCreationError(msg, {"slug": slug})

        tenant = await self.get_tenant(str(tenant_id))
        if tenant is None:
            msg = f"Created tenant {tenant_id} is not readable"
            raise TenantCreationError(msg, {"slug": slug})

        await self.set_current_tenant_id(user_id, tenant.id)
        return tenant

    async def get_membership(self, tenant_id: str, user_id: str) -> Membership | None:
        try:
            response = await (
                self._client.table(TABLE_TENANT_USERS)
                .select("*")
                .eq("tenant_id", tenant_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
            rows = [MembershipRow.model_validate(row) for row in response.data or []]
        except Exception as exc:
            msg = "Could not read membership"
            raise TenantDataError(msg, {"tenant_id": tenant_id, "user_id": user_id}) from exc
        return rows[0].to_membership() if rows else None

    async def update_tenant(
        self,
        tenant_id: str,
        *,
        name: str | None = None,
        logo_url: str | None = None,
    ) -> Tenant:
        payload: dict[str, Any] = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if name is not None:
            payload["name"] = name
        if logo_url is not None:
            payload["logo_url"] = logo_url
        try:
            response = await (
                self._client.table(TABLE_TENANTS)
                .update(payload)
                .eq("id", tenant_id)
                .execute()
            )
            rows = [TenantRow.model_validate(row) for row in response.data or []]
        except Exception as exc:
            msg = f"Could not update tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id}) from exc
        if not rows:
            msg = f"Unknown tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id})
        return rows[0].to_tenant()

    async def list_members(self, tenant_id: str) -> list[Membership]:
        try:
            response = await (
                self._client.table(TABLE_TENANT_USERS)
                .select("*")
                .eq("tenant_id", tenant_id)
                .execute()
            )
            rows = [MembershipRow.model_validate(row) for row in response.data or []]
        except Exception as exc:
            msg = "Could not list tenant members"
            raise TenantDataError(msg, {"tenant_id": tenant_id}) from exc
        return [row.to_membership() for row in rows]

    async def add_member(
        self,
        tenant_id: str,
        user_id: str,
        role: TenantRole = TenantRole.MEMBER,
        permissions: dict[str, bool] | None = None,
    ) -> Membership:
        payload: dict[str, Any] = {
            "tenant_id": tenant_id,
            "user_id": user_id,
            "role": role.value,
            "is_owner": False,
        }
        if permissions is not None:
            payload["permissions"] = permissions
        try:
            response = await self._client.table(TABLE_TENANT_USERS).insert(payload).execute()
            rows = [MembershipRow.model_validate(row) for row in response.data or []]
        except Exception as exc:
            msg = f"Could not add user {user_id} to tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id, "user_id": user_id}) from exc
        if not rows:
            return Membership(tenant_id=tenant_id, user_id=user_id, role=role, permissions=permissions)
        return rows[0].to_membership()

    async def remove_member(self, tenant_id: str, user_id: str) -> None:
        try:
            await (
                self._client.table(TABLE_TENANT_USERS)
                .delete()
                .eq("tenant_id", tenant_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as exc:
            msg = f"Could not remove user {user_id} from tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id, "user_id": user_id}) from exc

    async def update_member_role(
        self,
        tenant_id: str,
        user_id: str,
        role: TenantRole,
        permissions: dict[str, bool] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"role": role.value}
        if permissions is not None:
            payload["permissions"] = permissions
        try:
            response = await (
                self._client.table(TABLE_TENANT_USERS)
                .update(payload)
                .eq("tenant_id", tenant_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as exc:
            msg = f"Could not update role of user {user_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id, "user_id": user_id}) from exc
        if not response.data:
            msg = f"User {user_id} is not a member of tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id, "user_id": user_id})

    async def set_tenant_created_at(self, tenant_id: str, created_at: datetime) -> None:
        """Back-date a tenant for trial simulations. Needs an RLS policy that allows it."""
        try:
            await (
                self._client.table(TABLE_TENANTS)
                .update({"created_at": created_at.isoformat()})
                .eq("id", tenant_id)
                .execute()
            )
        except Exception as exc:
            msg = f"Could not update created_at of tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id}) from exc

    # ── BaseBillingService ───────────────────────────────────────

    async def update_subscription(self, tenant_id: str, plan_id: str) -> None:
        try:
            await (
                self._client.table(TABLE_TENANTS)
                .update({
                    "subscription_plan": plan_id,
                    "subscription_status": SUBSCRIPTION_ACTIVE,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                })
                .eq("id", tenant_id)
                .execute()
            )
        except Exception as exc:
            msg = f"Subscription update failed for tenant {tenant_id}"
            raise BillingError(msg, {"plan_id": plan_id}) from exc


async def create_supabase_backend(settings: Settings | None = None) -> SupabaseBackend:
    """Build a SupabaseBackend from settings (SUPABASE_URL / SUPABASE_ANON_KEY)."""
    settings = settings or get_settings()
    if not settings.supabase_url or not settings.supabase_anon_key.get_secret_value():
        msg = "SUPABASE_URL and SUPABASE_ANON_KEY are required for the Supabase backend"
        raise IdentityServiceError(msg)

    client = await acreate_client(
        settings.supabase_url,
        settings.supabase_anon_key.get_secret_value(),
    )
    log.info(
        "supabase_client_initialized",
        supabase_url=settings.supabase_url,
    )
    return SupabaseBackend(client)
