"""Tests for EntitlementEvaluator: activation, fail-open and simulated purchase."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from config.settings import Settings
from src.app import AppContext, build_pipeline
from src.backends.memory import InMemoryBackend
from src.core.exceptions import (
    BillingError,
    NotAuthenticatedError,
    TenantDataError,
    UnknownPlanError,
)
from src.core.types import EntitlementStatus, EntitlementView, TenantRole

if TYPE_CHECKING:
    from tests.conftest import FakeClock


def _seed_club(
    backend: InMemoryBackend,
    clock: FakeClock,
    *,
    age_days: float = 0,
    status: str | None = "trial",
    plan: str | None = None,
) -> str:
    owner = backend.add_user("owner@club.com")
    club = backend.add_tenant(
        "Alpha FC",
        tenant_id="t-alpha",
        created_at=clock.now - timedelta(days=age_days),
        subscription_status=status,
        subscription_plan=plan,
    )
    backend.add_membership(club.id, owner.id, TenantRole.OWNER, is_owner=True)
    backend.set_profile(owner.id, club.id)
    backend.restore_session("owner@club.com")
    return club.id


async def _running(
    backend: InMemoryBackend, clock: FakeClock, settings: Settings,
) -> AppContext:
    app = build_pipeline(backend, backend, backend, settings=settings, clock=clock)
    await app.start()
    await app.settle()
    return app


class TestActivation:
    """Tests for when the evaluator fetches and what it exposes."""

    def test_initial_state_is_loading_and_open(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        app = build_pipeline(backend, backend, backend, settings=settings, clock=clock)
        assert app.entitlement.loading is True
        assert app.entitlement.can_access_app is True

    @pytest.mark.asyncio
    async def test_signed_out_has_no_entitlement(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        app = await _running(backend, clock, settings)

        assert app.entitlement.loading is False
        assert app.entitlement.entitlement is None
        await app.close()

    @pytest.mark.asyncio
    async def test_no_tenant_has_no_entitlement(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        backend.add_user("lonely@club.com")
        backend.restore_session("lonely@club.com")

        app = await _running(backend, clock, settings)

        assert app.entitlement.loading is False
        assert app.entitlement.entitlement is None
        assert app.entitlement.can_access_app is True
        await app.close()

    @pytest.mark.asyncio
    async def test_trial_tenant(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        _seed_club(backend, clock)

        app = await _running(backend, clock, settings)

        entitlement = app.entitlement.entitlement
        assert entitlement is not None
        assert entitlement.status is EntitlementStatus.TRIAL
        assert entitlement.trial_days_remaining == 7
        assert app.entitlement.can_access_app is True
        await app.close()

    @pytest.mark.asyncio
    async def test_expired_tenant_is_denied(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        _seed_club(backend, clock, age_days=8)

        app = await _running(backend, clock, settings)

        entitlement = app.entitlement.entitlement
        assert entitlement is not None
        assert entitlement.status is EntitlementStatus.EXPIRED
        assert app.entitlement.can_access_app is False
        await app.close()

    @pytest.mark.asyncio
    async def test_active_subscription(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        _seed_club(backend, clock, age_days=40, status="active", plan="pro")

        app = await _running(backend, clock, settings)

        assert app.entitlement.entitlement is not None
        assert app.entitlement.entitlement.status is EntitlementStatus.ACTIVE
        assert app.entitlement.can_access_app is True
        await app.close()

    @pytest.mark.asyncio
    async def test_fetch_failure_fails_open(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        _seed_club(backend, clock, age_days=30)
        backend.fail("get_tenant", TenantDataError("db down"))

        app = await _running(backend, clock, settings)

        assert app.entitlement.loading is False
        assert app.entitlement.entitlement is None
        assert app.entitlement.can_access_app is True
        await app.close()


class TestTickAndRefresh:
    """Tests for clock re-derivation and manual refresh."""

    @pytest.mark.asyncio
    async def test_tick_expires_without_refetch(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        _seed_club(backend, clock, age_days=6.5)
        app = await _running(backend, clock, settings)
        fetches = backend.calls["get_tenant"]
        assert app.entitlement.entitlement is not None
        assert app.entitlement.entitlement.trial_days_remaining == 1

        clock.advance(days=1)
        app.entitlement.tick()

        assert app.entitlement.entitlement is not None
        assert app.entitlement.entitlement.status is EntitlementStatus.EXPIRED
        assert backend.calls["get_tenant"] == fetches
        await app.close()

    @pytest.mark.asyncio
    async def test_refresh_keeps_previous_value_visible(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        club_id = _seed_club(backend, clock, age_days=10)
        app = await _running(backend, clock, settings)
        seen: list[EntitlementView] = []
        app.entitlement.subscribe(seen.append)

        backend.patch_tenant(club_id, subscription_status="active", subscription_plan="basic")
        await app.entitlement.refresh()

        assert app.entitlement.entitlement is not None
        assert app.entitlement.entitlement.status is EntitlementStatus.ACTIVE
        assert all(view.loading is False for view in seen)
        await app.close()


class TestPurchasePlan:
    """Tests for the simulated plan purchase."""

    @pytest.mark.asyncio
    async def test_purchase_activates(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        club_id = _seed_club(backend, clock, age_days=9)
        app = await _running(backend, clock, settings)
        assert app.entitlement.can_access_app is False

        result = await app.entitlement.purchase_plan("pro")

        assert result is not None
        assert result.status is EntitlementStatus.ACTIVE
        assert app.entitlement.can_access_app is True
        tenant = await backend.get_tenant(club_id)
        assert tenant is not None
        assert tenant.subscription_plan == "pro"
        await app.close()

    @pytest.mark.asyncio
    async def test_unknown_plan_rejected_before_billing(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        _seed_club(backend, clock)
        app = await _running(backend, clock, settings)

        with pytest.raises(UnknownPlanError):
            await app.entitlement.purchase_plan("platinum")
        assert backend.calls["update_subscription"] == 0
        await app.close()

    @pytest.mark.asyncio
    async def test_billing_failure_is_wrapped(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        _seed_club(backend, clock)
        backend.fail("update_subscription", RuntimeError("gateway"))
        app = await _running(backend, clock, settings)

        with pytest.raises(BillingError):
            await app.entitlement.purchase_plan("basic")
        assert app.entitlement.entitlement is not None
        assert app.entitlement.entitlement.status is EntitlementStatus.TRIAL
        await app.close()

    @pytest.mark.asyncio
    async def test_requires_current_tenant(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        app = await _running(backend, clock, settings)

        with pytest.raises(NotAuthenticatedError):
            await app.entitlement.purchase_plan("basic")
        await app.close()


class TestTenantSwitch:
    """Tests for re-evaluation when the current tenant changes."""

    @pytest.mark.asyncio
    async def test_switch_evaluates_new_tenant(
        self, backend: InMemoryBackend, clock: FakeClock, settings: Settings,
    ) -> None:
        _seed_club(backend, clock, age_days=20)
        app = await _running(backend, clock, settings)
        assert app.session.identity is not None
        fresh = backend.add_tenant("Beta FC", tenant_id="t-beta", created_at=clock.now)
        backend.add_membership(fresh.id, app.session.identity.id, TenantRole.ADMIN)
        await app.tenancy.refresh_tenants()
        await app.settle()
        assert app.entitlement.can_access_app is False

        await app.tenancy.set_current_tenant(fresh)
        await app.settle()

        assert app.entitlement.entitlement is not None
        assert app.entitlement.entitlement.status is EntitlementStatus.TRIAL
        assert app.entitlement.can_access_app is True
        await app.close()
