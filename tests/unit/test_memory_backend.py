"""Tests for the in-memory backend used by scripts and pipeline tests."""

from __future__ import annotations

import asyncio

import pytest

from src.backends.memory import InMemoryBackend
from src.core.exceptions import BillingError, TenantCreationError, TenantDataError
from src.core.types import SessionEvent, TenantRole


class TestAuth:
    """Tests for in-memory sign-in, sign-up and events."""

    @pytest.mark.asyncio
    async def test_sign_in_emits_event(self, backend: InMemoryBackend) -> None:
        alice = backend.add_user("Alice@Club.com", "pw-alice")
        events: list[SessionEvent] = []
        backend.on_session_change(lambda event, _session: events.append(event))

        result = await backend.sign_in_with_password("alice@club.com", "pw-alice")

        assert result.ok
        assert events == [SessionEvent.SIGNED_IN]
        session = await backend.get_current_session()
        assert session is not None
        assert session.identity == alice
        assert backend.local_storage["aura-club-auth"] == session.access_token

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, backend: InMemoryBackend) -> None:
        result = await backend.sign_up("new@club.com", "123")
        assert result.error is not None
        assert "6" in result.error

    @pytest.mark.asyncio
    async def test_unsubscribe(self, backend: InMemoryBackend) -> None:
        backend.add_user("alice@club.com", "pw-alice")
        events: list[SessionEvent] = []
        unsubscribe = backend.on_session_change(lambda event, _session: events.append(event))
        unsubscribe()

        await backend.sign_in_with_password("alice@club.com", "pw-alice")

        assert events == []


class TestScenarioHooks:
    """Tests for failure injection and call holding."""

    @pytest.mark.asyncio
    async def test_fail_and_clear(self, backend: InMemoryBackend) -> None:
        backend.fail("get_tenant", TenantDataError("down"))
        with pytest.raises(TenantDataError):
            await backend.get_tenant("t1")

        backend.fail("get_tenant")
        assert await backend.get_tenant("t1") is None
        assert backend.calls["get_tenant"] == 2

    @pytest.mark.asyncio
    async def test_hold_and_release(self, backend: InMemoryBackend) -> None:
        backend.hold("list_memberships")
        task = asyncio.create_task(backend.list_memberships("u1"))
        await asyncio.sleep(0)
        assert not task.done()

        backend.release("list_memberships")
        assert await task == []


class TestTenancy:
    """Tests for memberships, selection and tenant creation."""

    @pytest.mark.asyncio
    async def test_memberships_in_insertion_order_with_role(
        self, backend: InMemoryBackend,
    ) -> None:
        a = backend.add_tenant("A", tenant_id="t-a")
        b = backend.add_tenant("B", tenant_id="t-b")
        backend.add_membership(b.id, "u1", TenantRole.ADMIN)
        backend.add_membership(a.id, "u1", TenantRole.OWNER, is_owner=True)
        backend.add_membership(a.id, "u2")

        tenants = await backend.list_memberships("u1")

        assert [(t.id, t.role) for t in tenants] == [
            ("t-b", TenantRole.ADMIN),
            ("t-a", TenantRole.OWNER),
        ]

    @pytest.mark.asyncio
    async def test_create_tenant_makes_owner_current(self, backend: InMemoryBackend) -> None:
        tenant = await backend.create_tenant("u1", "Clube Novo", "clube-novo")

        membership = await backend.get_membership(tenant.id, "u1")
        assert membership is not None
        assert membership.is_owner is True
        assert await backend.get_current_tenant_id("u1") == tenant.id
        assert tenant.subscription_status == "trial"

    @pytest.mark.asyncio
    async def test_duplicate_slug(self, backend: InMemoryBackend) -> None:
        await backend.create_tenant("u1", "Clube", "clube")
        with pytest.raises(TenantCreationError):
            await backend.create_tenant("u2", "Clube", "clube")

    @pytest.mark.asyncio
    async def test_writes_are_recorded(self, backend: InMemoryBackend) -> None:
        await backend.set_current_tenant_id("u1", "t1")
        backend.set_profile("u2", "t2")
        assert backend.writes == [("u1", "t1")]


class TestMembers:
    """Tests for tenant updates and membership administration."""

    @pytest.mark.asyncio
    async def test_update_tenant_changes_given_fields(self, backend: InMemoryBackend) -> None:
        tenant = backend.add_tenant("Alpha FC", tenant_id="t-a")

        updated = await backend.update_tenant(tenant.id, logo_url="https://cdn/alpha.png")

        assert updated.name == "Alpha FC"
        assert updated.logo_url == "https://cdn/alpha.png"
        assert await backend.get_tenant(tenant.id) == updated

    @pytest.mark.asyncio
    async def test_update_unknown_tenant(self, backend: InMemoryBackend) -> None:
        with pytest.raises(TenantDataError):
            await backend.update_tenant("missing", name="X")

    @pytest.mark.asyncio
    async def test_add_and_list_members(self, backend: InMemoryBackend) -> None:
        tenant = backend.add_tenant("A", tenant_id="t-a")
        backend.add_membership(tenant.id, "u1", TenantRole.OWNER, is_owner=True)

        added = await backend.add_member(tenant.id, "u2", TenantRole.MANAGER)
        members = await backend.list_members(tenant.id)

        assert added.is_owner is False
        assert [(m.user_id, m.role) for m in members] == [
            ("u1", TenantRole.OWNER),
            ("u2", TenantRole.MANAGER),
        ]

    @pytest.mark.asyncio
    async def test_add_existing_member_rejected(self, backend: InMemoryBackend) -> None:
        tenant = backend.add_tenant("A", tenant_id="t-a")
        await backend.add_member(tenant.id, "u2")

        with pytest.raises(TenantDataError):
            await backend.add_member(tenant.id, "u2")

    @pytest.mark.asyncio
    async def test_remove_member_revokes_listing(self, backend: InMemoryBackend) -> None:
        tenant = backend.add_tenant("A", tenant_id="t-a")
        backend.add_membership(tenant.id, "u2")

        await backend.remove_member(tenant.id, "u2")
        await backend.remove_member(tenant.id, "u2")

        assert await backend.list_memberships("u2") == []
        assert await backend.get_membership(tenant.id, "u2") is None

    @pytest.mark.asyncio
    async def test_update_role_keeps_overrides_unless_given(
        self, backend: InMemoryBackend,
    ) -> None:
        tenant = backend.add_tenant("A", tenant_id="t-a")
        backend.add_membership(tenant.id, "u2", permissions={"view_finance": True})

        await backend.update_member_role(tenant.id, "u2", TenantRole.MANAGER)
        membership = await backend.get_membership(tenant.id, "u2")
        assert membership is not None
        assert membership.role is TenantRole.MANAGER
        assert membership.permissions == {"view_finance": True}

        await backend.update_member_role(
            tenant.id, "u2", TenantRole.ADMIN, {"manage_finance": False},
        )
        membership = await backend.get_membership(tenant.id, "u2")
        assert membership is not None
        assert membership.permissions == {"manage_finance": False}

    @pytest.mark.asyncio
    async def test_update_role_of_non_member(self, backend: InMemoryBackend) -> None:
        tenant = backend.add_tenant("A", tenant_id="t-a")
        with pytest.raises(TenantDataError):
            await backend.update_member_role(tenant.id, "u9", TenantRole.ADMIN)


class TestBilling:
    """Tests for the simulated subscription update."""

    @pytest.mark.asyncio
    async def test_update_subscription(self, backend: InMemoryBackend) -> None:
        tenant = backend.add_tenant("A")
        await backend.update_subscription(tenant.id, "enterprise")

        updated = await backend.get_tenant(tenant.id)
        assert updated is not None
        assert updated.subscription_status == "active"
        assert updated.subscription_plan == "enterprise"

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, backend: InMemoryBackend) -> None:
        with pytest.raises(BillingError):
            await backend.update_subscription("missing", "pro")
