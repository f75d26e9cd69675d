"""Entitlement evaluator — trial/subscription state of the current tenant.

Activation rules:
- session loading            -> stay in the initial loading state
- no identity                -> no entitlement, not loading
- tenancy loading            -> loading (never evaluated against a stale tenant)
- tenancy settled, no tenant -> no entitlement, not loading
- tenancy settled, tenant    -> fetch the tenant's billing fields and compute
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from src.core.constants import TRIAL_DAYS
from src.core.exceptions import BillingError, NotAuthenticatedError
from src.core.interfaces import BaseBillingService, BaseTenantStore
from src.core.logging import get_logger
from src.core.store import ObservableStore
from src.core.types import EntitlementState, EntitlementView, Tenant
from src.entitlement.calculator import compute_entitlement
from src.entitlement.plans import PlanCatalog
from src.session.store import SessionStore
from src.tenancy.resolver import TenancyResolver

log = get_logger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntitlementEvaluator(ObservableStore[EntitlementView]):
    """Computes EntitlementState for the current tenant and the access predicate."""

    def __init__(
        self,
        session: SessionStore,
        tenancy: TenancyResolver,
        store: BaseTenantStore,
        billing: BaseBillingService,
        *,
        plans: PlanCatalog | None = None,
        clock: Clock = _utcnow,
        trial_days: int = TRIAL_DAYS,
    ) -> None:
        super().__init__(EntitlementView())
        self._session = session
        self._tenancy = tenancy
        self._store = store
        self._billing = billing
        self._plans = plans
        self._clock = clock
        self._trial_days = trial_days
        self._key: tuple[str, str] | None = None
        self._tenant: Tenant | None = None
        self._unsubscribers: list[Callable[[], None]] = []

    # ── Accessors ────────────────────────────────────────────────

    @property
    def entitlement(self) -> EntitlementState | None:
        return self._state.entitlement

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def can_access_app(self) -> bool:
        return self._state.can_access_app

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        if not self._unsubscribers:
            self._unsubscribers = [
                self._session.subscribe(self._reconcile),
                self._tenancy.subscribe(self._reconcile),
            ]
        self._reconcile()

    async def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await super().close()

    def _clear(self) -> None:
        self._next_generation()
        self._key = None
        self._tenant = None
        self._set_state(entitlement=None, loading=False)

    def _reconcile(self, _state: Any = None) -> None:
        session = self._session.state
        if session.loading:
            return

        if session.identity is None:
            self._clear()
            return

        tenancy = self._tenancy.state
        if tenancy.loading:
            if self._key is not None or not self._state.loading:
                self._next_generation()
                self._key = None
                self._set_state(loading=True)
            return

        tenant = tenancy.current_tenant
        if tenant is None:
            self._clear()
            return

        key = (session.identity.id, tenant.id)
        if key == self._key:
            return
        self._key = key
        generation = self._next_generation()
        self._set_state(loading=True)
        self._spawn(self._load(tenant.id, generation), name=f"entitlement-load-{tenant.id}")

    # ── Evaluation ───────────────────────────────────────────────

    async def _load(self, tenant_id: str, generation: int) -> None:
        try:
            tenant = await self._store.get_tenant(tenant_id)
        except Exception as exc:
            log.error("entitlement_fetch_failed", tenant_id=tenant_id, error=str(exc))
            tenant = None

        if not self._is_current(generation):
            log.debug("entitlement_result_discarded", tenant_id=tenant_id)
            return

        self._tenant = tenant
        result = self._compute(tenant)
        self._set_state(entitlement=result, loading=False)
        if result is not None:
            log.info(
                "entitlement_evaluated",
                tenant_id=tenant_id,
                status=result.status.value,
                trial_days_remaining=result.trial_days_remaining,
            )

    def _compute(self, tenant: Tenant | None) -> EntitlementState | None:
        if tenant is None:
            return None
        return compute_entitlement(tenant, self._clock(), self._trial_days)

    def tick(self) -> None:
        """Recompute against the current time from the cached tenant (no I/O)."""
        if self._state.loading or self._tenant is None:
            return
        self._set_state(entitlement=self._compute(self._tenant))

    async def refresh(self) -> None:
        """Re-fetch the current tenant's billing fields and recompute.

        The previous entitlement stays visible until the new one lands.
        """
        if self._key is None:
            return
        generation = self._next_generation()
        await self._load(self._key[1], generation)

    async def purchase_plan(self, plan_id: str) -> EntitlementState | None:
        """Simulated purchase: activate ``plan_id`` for the current tenant and refresh."""
        if self._key is None:
            msg = "No current tenant to subscribe"
            raise NotAuthenticatedError(msg)
        if self._plans is not None:
            self._plans.get(plan_id)

        tenant_id = self._key[1]
        try:
            await self._billing.update_subscription(tenant_id, plan_id)
        except BillingError:
            raise
        except Exception as exc:
            msg = f"Subscription update failed for tenant {tenant_id}"
            raise BillingError(msg, {"plan_id": plan_id}) from exc

        log.info("subscription_updated", tenant_id=tenant_id, plan_id=plan_id)
        await self.refresh()
        return self._state.entitlement
