"""Tenancy resolver — which clubs the identity belongs to, and which is current.

Resolution waits for the session store to settle. Each resolution is
tagged with a generation; when the identity changes (or signs out) before
a fetch returns, the stale result is dropped instead of merged.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Callable

from src.core.exceptions import (
    NotAuthenticatedError,
    TenantCreationError,
    TenantSelectionError,
)
from src.core.interfaces import BaseTenantStore
from src.core.logging import get_logger
from src.core.store import ObservableStore
from src.core.types import SessionState, TenancyState, Tenant
from src.session.store import SessionStore
from src.tenancy.slug import generate_slug
from src.tenancy.snapshot import publish_current_tenant_id

log = get_logger(__name__)


class TenancyResolver(ObservableStore[TenancyState]):
    """Resolves memberships and the current tenant for the signed-in identity."""

    def __init__(self, session: SessionStore, store: BaseTenantStore) -> None:
        super().__init__(TenancyState())
        self._session = session
        self._store = store
        self._user_id: str | None = None
        self._activated = False
        self._default_write: asyncio.Task[None] | None = None
        self._unsubscribe_session: Callable[[], None] | None = None

    # ── Accessors ────────────────────────────────────────────────

    @property
    def current_tenant(self) -> Tenant | None:
        return self._state.current_tenant

    @property
    def tenants(self) -> tuple[Tenant, ...]:
        return self._state.tenants

    @property
    def loading(self) -> bool:
        return self._state.loading

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        """Follow the session store. Safe to call before the session settles."""
        if self._unsubscribe_session is None:
            self._unsubscribe_session = self._session.subscribe(self._on_session)
        self._on_session(self._session.state)

    async def close(self) -> None:
        if self._unsubscribe_session is not None:
            self._unsubscribe_session()
            self._unsubscribe_session = None
        await super().close()

    def _set_state(self, **changes: Any) -> None:
        super()._set_state(**changes)
        current = self._state.current_tenant
        publish_current_tenant_id(current.id if current else None)

    def _on_session(self, session: SessionState) -> None:
        if session.loading:
            # Identity not known yet: stay optimistic-loading, no "no tenant" flash.
            return

        user_id = session.identity.id if session.identity else None
        if self._activated and user_id == self._user_id:
            return
        self._activated = True
        self._user_id = user_id

        generation = self._next_generation()
        if user_id is None:
            self._set_state(current_tenant=None, tenants=(), loading=False)
            return

        self._set_state(loading=True)
        self._spawn(self._resolve(user_id, generation), name=f"tenancy-resolve-{user_id}")

    # ── Resolution ───────────────────────────────────────────────

    async def _resolve(self, user_id: str, generation: int) -> None:
        try:
            tenants, current_id = await asyncio.gather(
                self._store.list_memberships(user_id),
                self._store.get_current_tenant_id(user_id),
            )
        except Exception as exc:
            log.error("tenant_resolution_failed", user_id=user_id, error=str(exc))
            if self._is_current(generation):
                self._set_state(current_tenant=None, tenants=(), loading=False)
            return

        if not self._is_current(generation):
            log.debug("tenant_resolution_discarded", user_id=user_id, generation=generation)
            return

        current = next((t for t in tenants if t.id == current_id), None)
        if current is None and tenants:
            current = tenants[0]
            if current_id:
                log.warning(
                    "stale_current_tenant",
                    user_id=user_id,
                    stale_tenant_id=current_id,
                    fallback_tenant_id=current.id,
                )
            self._default_write = self._spawn(
                self._persist_default(user_id, current.id),
                name=f"tenancy-default-{user_id}",
            )

        self._set_state(tenants=tuple(tenants), current_tenant=current, loading=False)
        log.info(
            "tenant_resolved",
            user_id=user_id,
            tenant_id=current.id if current else None,
            memberships=len(tenants),
        )

    async def _persist_default(self, user_id: str, tenant_id: str) -> None:
        """Best-effort write of the fallback selection. Never retried."""
        try:
            await self._store.set_current_tenant_id(user_id, tenant_id)
        except Exception as exc:
            log.warning(
                "default_tenant_persist_failed",
                user_id=user_id,
                tenant_id=tenant_id,
                error=str(exc),
            )
            return
        log.info("default_tenant_persisted", user_id=user_id, tenant_id=tenant_id)

    # ── Operations ───────────────────────────────────────────────

    def _require_user(self) -> str:
        if self._user_id is None:
            msg = "No signed-in identity"
            raise NotAuthenticatedError(msg)
        return self._user_id

    async def refresh_tenants(self) -> None:
        """Reload memberships and the current selection for the same identity."""
        if self._user_id is None:
            return
        user_id = self._user_id
        generation = self._next_generation()
        self._set_state(loading=True)
        await self._resolve(user_id, generation)

    async def set_current_tenant(self, tenant: Tenant) -> None:
        """Persist ``tenant`` as current, then switch to it.

        If the write fails the in-memory selection is left untouched and
        TenantSelectionError propagates.
        """
        user_id = self._require_user()
        if tenant.id not in {t.id for t in self._state.tenants}:
            msg = f"Identity is not a member of tenant {tenant.id}"
            raise TenantSelectionError(msg, {"tenant_id": tenant.id, "user_id": user_id})

        # A pending default write must land first so it cannot clobber this choice.
        pending = self._default_write
        if pending is not None and not pending.done():
            await asyncio.wait({pending})

        try:
            await self._store.set_current_tenant_id(user_id, tenant.id)
        except Exception as exc:
            log.warning(
                "tenant_switch_failed",
                user_id=user_id,
                tenant_id=tenant.id,
                error=str(exc),
            )
            msg = f"Could not select tenant {tenant.id}"
            raise TenantSelectionError(msg, {"tenant_id": tenant.id}) from exc

        if self._user_id != user_id:
            return

        # Any resolution started before the write read the old selection.
        generation = self._next_generation()
        was_loading = self._state.loading
        selected = next((t for t in self._state.tenants if t.id == tenant.id), None)
        if selected is None or was_loading:
            self._set_state(loading=True)
            self._spawn(self._resolve(user_id, generation), name=f"tenancy-resolve-{user_id}")
        if selected is None:
            log.warning("tenant_switch_membership_gone", user_id=user_id, tenant_id=tenant.id)
            msg = f"Membership of tenant {tenant.id} disappeared during the switch"
            raise TenantSelectionError(msg, {"tenant_id": tenant.id, "user_id": user_id})

        self._set_state(current_tenant=selected)
        log.info("tenant_switched", user_id=user_id, tenant_id=tenant.id)

    async def update_tenant(
        self,
        tenant_id: str,
        *,
        name: str | None = None,
        logo_url: str | None = None,
    ) -> Tenant:
        """Rename a club or change its logo, keeping the listed role intact."""
        user_id = self._require_user()
        updated = await self._store.update_tenant(
            tenant_id,
            name=name.strip() if name is not None else None,
            logo_url=logo_url,
        )
        log.info("tenant_updated", user_id=user_id, tenant_id=tenant_id)

        if self._user_id != user_id:
            return updated
        tenants = tuple(
            replace(updated, role=t.role, is_owner=t.is_owner) if t.id == tenant_id else t
            for t in self._state.tenants
        )
        current = self._state.current_tenant
        if current is not None and current.id == tenant_id:
            current = next((t for t in tenants if t.id == tenant_id), current)
        self._set_state(tenants=tenants, current_tenant=current)
        return updated

    async def create_tenant(self, name: str) -> Tenant:
        """Create a club owned by the identity and reload memberships."""
        user_id = self._require_user()
        slug = generate_slug(name)
        try:
            tenant = await self._store.create_tenant(user_id, name.strip(), slug)
        except TenantCreationError:
            raise
        except Exception as exc:
            msg = f"Could not create tenant {name!r}"
            raise TenantCreationError(msg, {"slug": slug}) from exc

        log.info("tenant_created", user_id=user_id, tenant_id=tenant.id, slug=slug)
        await self.refresh_tenants()
        return tenant
