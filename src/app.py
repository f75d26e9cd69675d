"""Composition root — wires Session -> Tenancy -> Entitlement -> Gate.

Usage:
    backend = InMemoryBackend()
    app = build_pipeline(backend, backend, backend)
    await app.start()
    await app.settle()
    decision = app.gate.evaluate("/dashboard")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from config.settings import Settings, get_settings
from src.backends.supabase_backend import create_supabase_backend
from src.core.interfaces import BaseBillingService, BaseIdentityService, BaseTenantStore
from src.core.logging import get_logger
from src.entitlement.evaluator import EntitlementEvaluator
from src.entitlement.plans import PlanCatalog, load_plans
from src.gate.route_gate import RouteGate
from src.session.store import SessionStore
from src.tenancy.resolver import TenancyResolver

log = get_logger(__name__)


@dataclass
class AppContext:
    """The live pipeline. Downstream stages subscribe before the session starts."""

    session: SessionStore
    tenancy: TenancyResolver
    entitlement: EntitlementEvaluator
    gate: RouteGate
    plans: PlanCatalog

    async def start(self) -> None:
        self.tenancy.start()
        self.entitlement.start()
        await self.session.start()

    async def settle(self) -> None:
        """Wait until no stage has background work in flight."""
        stages = (self.session, self.tenancy, self.entitlement)
        while any(stage.busy for stage in stages):
            for stage in stages:
                await stage.wait_idle()

    async def close(self) -> None:
        await self.entitlement.close()
        await self.tenancy.close()
        await self.session.close()
        log.info("pipeline_closed")


def build_pipeline(
    identity: BaseIdentityService,
    tenants: BaseTenantStore,
    billing: BaseBillingService,
    *,
    settings: Settings | None = None,
    plans: PlanCatalog | None = None,
    clock: Callable[[], datetime] | None = None,
) -> AppContext:
    settings = settings or get_settings()
    plans = plans if plans is not None else load_plans(settings.plans_file)

    session = SessionStore(
        identity,
        password_reset_redirect_url=settings.password_reset_redirect_url,
    )
    tenancy = TenancyResolver(session, tenants)
    evaluator_kwargs = {"clock": clock} if clock is not None else {}
    entitlement = EntitlementEvaluator(
        session,
        tenancy,
        tenants,
        billing,
        plans=plans,
        trial_days=settings.trial_days,
        **evaluator_kwargs,
    )
    gate = RouteGate(
        session,
        tenancy,
        entitlement,
        exempt_paths=settings.entitlement_exempt_paths,
        sign_in_path=settings.sign_in_path,
        billing_path=settings.billing_path,
    )
    log.debug("pipeline_built", env=settings.aura_env, trial_days=settings.trial_days)
    return AppContext(
        session=session,
        tenancy=tenancy,
        entitlement=entitlement,
        gate=gate,
        plans=plans,
    )


async def build_supabase_pipeline(settings: Settings | None = None) -> AppContext:
    """Production wiring: one SupabaseBackend serves all three interfaces."""
    settings = settings or get_settings()
    backend = await create_supabase_backend(settings)
    return build_pipeline(backend, backend, backend, settings=settings)
