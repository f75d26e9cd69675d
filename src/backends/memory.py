"""In-memory backend for development, scripts and tests.

Implements the identity, tenant and billing interfaces over plain dicts.
Two hooks make failure and timing scenarios reproducible:

- ``fail(op, exc)`` makes every call to ``op`` raise ``exc`` until cleared.
- ``hold(op)`` pauses calls to ``op`` until ``release(op)``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import secrets
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from uuid_extensions import uuid7

from src.core.constants import (
    AUTH_STORAGE_KEY,
    AUTH_STORAGE_PREFIX,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_TRIAL,
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

MIN_PASSWORD_LENGTH = 6


@dataclass
class _UserRecord:
    identity: Identity
    password: str
    is_super_admin: bool = False


class InMemoryBackend(BaseIdentityService, BaseTenantStore, BaseBillingService):
    """Dict-backed auth, tenancy and billing. Replace with SupabaseBackend in production."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        storage_key: str = AUTH_STORAGE_KEY,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._storage_key = storage_key
        self._users: dict[str, _UserRecord] = {}  # email -> record
        self._tenants: dict[str, Tenant] = {}
        self._memberships: list[Membership] = []
        self._profiles: dict[str, str | None] = {}  # user_id -> current_tenant_id
        self._session: AuthSession | None = None
        self._listeners: list[SessionListener] = []

        self.local_storage: dict[str, str] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: Counter[str] = Counter()
        self.writes: list[tuple[str, str]] = []
        self.password_resets: list[tuple[str, str]] = []
        self._gates: dict[str, asyncio.Event] = {}

    # ── Scenario Hooks ───────────────────────────────────────────

    def fail(self, op: str, exc: Exception | None = None) -> None:
        """Make ``op`` raise ``exc``. Passing None clears the failure."""
        if exc is None:
            self.failures.pop(op, None)
        else:
            self.failures[op] = exc

    def hold(self, op: str) -> None:
        self._gates.setdefault(op, asyncio.Event())

    def release(self, op: str) -> None:
        gate = self._gates.pop(op, None)
        if gate is not None:
            gate.set()

    async def _enter(self, op: str) -> None:
        self.calls[op] += 1
        gate = self._gates.get(op)
        if gate is not None:
            await gate.wait()
        exc = self.failures.get(op)
        if exc is not None:
            raise exc

    # ── Seeding ──────────────────────────────────────────────────

    def add_user(
        self,
        email: str,
        password: str = "secret123",
        *,
        user_id: str | None = None,
        metadata: dict[str, str] | None = None,
        is_super_admin: bool = False,
    ) -> Identity:
        identity = Identity(id=user_id or str(uuid7()), email=email, metadata=dict(metadata or {}))
        self._users[email.lower()] = _UserRecord(identity, password, is_super_admin)
        self._profiles.setdefault(identity.id, None)
        return identity

    def add_tenant(
        self,
        name: str,
        *,
        tenant_id: str | None = None,
        slug: str | None = None,
        created_at: datetime | None = None,
        subscription_status: str | None = SUBSCRIPTION_TRIAL,
        subscription_plan: str | None = None,
    ) -> Tenant:
        tenant = Tenant(
            id=tenant_id or str(uuid7()),
            name=name,
            slug=slug or name.lower().replace(" ", "-"),
            created_at=created_at or self._clock(),
            subscription_status=subscription_status,
            subscription_plan=subscription_plan,
        )
        self._tenants[tenant.id] = tenant
        return tenant

    def add_membership(
        self,
        tenant_id: str,
        user_id: str,
        role: TenantRole = TenantRole.MEMBER,
        *,
        is_owner: bool = False,
        permissions: dict[str, bool] | None = None,
    ) -> Membership:
        membership = Membership(
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            is_owner=is_owner,
            permissions=permissions,
        )
        self._memberships.append(membership)
        return membership

    def set_profile(self, user_id: str, current_tenant_id: str | None) -> None:
        """Seed the stored selection without recording a write."""
        self._profiles[user_id] = current_tenant_id

    def patch_tenant(self, tenant_id: str, **changes: Any) -> Tenant:
        tenant = dataclasses.replace(self._tenants[tenant_id], **changes)
        self._tenants[tenant_id] = tenant
        return tenant

    async def set_tenant_created_at(self, tenant_id: str, created_at: datetime) -> None:
        self.patch_tenant(tenant_id, created_at=created_at)

    def restore_session(self, email: str) -> AuthSession:
        """Pretend a previous visit left a persisted session behind."""
        session = self._new_session(self._users[email.lower()].identity)
        self._session = session
        return session

    # ── Auth Events ──────────────────────────────────────────────

    def on_session_change(self, listener: SessionListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: SessionEvent, session: AuthSession | None) -> None:
        """Deliver an auth event to every listener, synchronously."""
        for listener in list(self._listeners):
            listener(event, session)

    def _new_session(self, identity: Identity) -> AuthSession:
        session = AuthSession(
            identity=identity,
            access_token=secrets.token_urlsafe(24),
            refresh_token=secrets.token_urlsafe(24),
        )
        self.local_storage[self._storage_key] = session.access_token
        return session

    # ── BaseIdentityService ──────────────────────────────────────

    async def get_current_session(self) -> AuthSession | None:
        await self._enter("get_current_session")
        return self._session

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        await self._enter("sign_in_with_password")
        record = self._users.get(email.lower())
        if record is None or record.password != password:
            return AuthResult(error="Invalid login credentials")

        self._session = self._new_session(record.identity)
        self.emit(SessionEvent.SIGNED_IN, self._session)
        return AuthResult()

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, str] | None = None,
    ) -> AuthResult:
        await self._enter("sign_up")
        if email.lower() in self._users:
            return AuthResult(error="User already registered")
        if len(password) < MIN_PASSWORD_LENGTH:
            return AuthResult(error=f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
        self.add_user(email, password, metadata=metadata)
        return AuthResult()

    async def sign_out(self) -> None:
        await self._enter("sign_out")
        self._session = None
        self.emit(SessionEvent.SIGNED_OUT, None)

    async def reset_password(self, email: str, redirect_to: str) -> AuthResult:
        await self._enter("reset_password")
        self.password_resets.append((email, redirect_to))
        return AuthResult()

    async def get_user_role_status(self) -> dict[str, bool]:
        await self._enter("get_user_role_status")
        if self._session is None:
            msg = "No session for role status"
            raise IdentityServiceError(msg)
        record = self._users.get(self._session.identity.email.lower())
        return {"is_super_admin": bool(record and record.is_super_admin)}

    async def clear_local_session(self) -> None:
        self._session = None
        for key in list(self.local_storage):
            if key == self._storage_key or key.startswith(AUTH_STORAGE_PREFIX):
                del self.local_storage[key]

    # ── BaseTenantStore ──────────────────────────────────────────

    async def list_memberships(self, user_id: str) -> list[Tenant]:
        await self._enter("list_memberships")
        return [
            dataclasses.replace(self._tenants[m.tenant_id], role=m.role, is_owner=m.is_owner)
            for m in self._memberships
            if m.user_id == user_id and m.tenant_id in self._tenants
        ]

    async def get_current_tenant_id(self, user_id: str) -> str | None:
        await self._enter("get_current_tenant_id")
        return self._profiles.get(user_id)

    async def set_current_tenant_id(self, user_id: str, tenant_id: str) -> None:
        await self._enter("set_current_tenant_id")
        self.writes.append((user_id, tenant_id))
        self._profiles[user_id] = tenant_id

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        await self._enter("get_tenant")
        return self._tenants.get(tenant_id)

    async def create_tenant(self, user_id: str, name: str, slug: str) -> Tenant:
        await self._enter("create_tenant")
        if any(t.slug == slug for t in self._tenants.values()):
            msg = f"Slug already taken: {slug}"
            raise TenantCreationError(msg, {"slug": slug})

        tenant = self.add_tenant(name, slug=slug)
        self.add_membership(tenant.id, user_id, TenantRole.OWNER, is_owner=True)
        self._profiles[user_id] = tenant.id
        log.debug("memory_tenant_created", tenant_id=tenant.id, user_id=user_id)
        return tenant

    async def get_membership(self, tenant_id: str, user_id: str) -> Membership | None:
        await self._enter("get_membership")
        return next(
            (m for m in self._memberships if m.tenant_id == tenant_id and m.user_id == user_id),
            None,
        )

    async def update_tenant(
        self,
        tenant_id: str,
        *,
        name: str | None = None,
        logo_url: str | None = None,
    ) -> Tenant:
        await self._enter("update_tenant")
        if tenant_id not in self._tenants:
            msg = f"Unknown tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id})
        changes = {k: v for k, v in (("name", name), ("logo_url", logo_url)) if v is not None}
        return self.patch_tenant(tenant_id, **changes)

    async def list_members(self, tenant_id: str) -> list[Membership]:
        await self._enter("list_members")
        return [m for m in self._memberships if m.tenant_id == tenant_id]

    async def add_member(
        self,
        tenant_id: str,
        user_id: str,
        role: TenantRole = TenantRole.MEMBER,
        permissions: dict[str, bool] | None = None,
    ) -> Membership:
        await self._enter("add_member")
        if tenant_id not in self._tenants:
            msg = f"Unknown tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id})
        if any(m.tenant_id == tenant_id and m.user_id == user_id for m in self._memberships):
            msg = f"User {user_id} already belongs to tenant {tenant_id}"
            raise TenantDataError(msg, {"tenant_id": tenant_id, "user_id": user_id})
        return self.add_membership(tenant_id, user_id, role, permissions=permissions)

    async def remove_member(self, tenant_id: str, user_id: str) -> None:
        await self._enter("remove_member")
        self._memberships = [
            m for m in self._memberships
            if not (m.tenant_id == tenant_id and m.user_id == user_id)
        ]

    async def update_member_role(
        self,
        tenant_id: str,
        user_id: str,
        role: TenantRole,
        permissions: dict[str, bool] | None = None,
    ) -> None:
        await self._enter("update_member_role")
        for index, membership in enumerate(self._memberships):
            if membership.tenant_id == tenant_id and membership.user_id == user_id:
                changes: dict[str, Any] = {"role": role}
                if permissions is not None:
                    changes["permissions"] = dict(permissions)
                self._memberships[index] = dataclasses.replace(membership, **changes)
                return
        msg = f"User {user_id} is not a member of tenant {tenant_id}"
        raise TenantDataError(msg, {"tenant_id": tenant_id, "user_id": user_id})

    # ── BaseBillingService ───────────────────────────────────────

    async def update_subscription(self, tenant_id: str, plan_id: str) -> None:
        await self._enter("update_subscription")
        if tenant_id not in self._tenants:
            msg = f"Unknown tenant {tenant_id}"
            raise BillingError(msg, {"tenant_id": tenant_id})
        self.patch_tenant(
            tenant_id,
            subscription_status=SUBSCRIPTION_ACTIVE,
            subscription_plan=plan_id,
        )
