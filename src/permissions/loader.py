"""Load the effective permissions of an identity in a tenant."""

from __future__ import annotations

from src.core.interfaces import BaseTenantStore
from src.core.logging import get_logger
from src.core.types import TenantRole
from src.permissions.roles import PERMISSION_KEYS, PermissionSet, default_permissions

log = get_logger(__name__)

_VIEW_ONLY = PermissionSet(
    role=TenantRole.MEMBER,
    grants=default_permissions(TenantRole.MEMBER),
)


async def load_permissions(
    store: BaseTenantStore,
    tenant_id: str | None,
    user_id: str | None,
) -> PermissionSet:
    """Resolve permissions for ``user_id`` in ``tenant_id``.

    Owners get everything. Stored per-membership overrides win over role
    defaults. Lookup failures degrade to member (view-only) permissions.
    """
    if not tenant_id or not user_id:
        return PermissionSet(grants={})

    try:
        membership = await store.get_membership(tenant_id, user_id)
    except Exception as exc:
        log.warning(
            "permissions_load_failed",
            tenant_id=tenant_id,
            user_id=user_id,
            error=str(exc),
        )
        return _VIEW_ONLY

    if membership is None:
        log.warning("membership_not_found", tenant_id=tenant_id, user_id=user_id)
        return _VIEW_ONLY

    if membership.is_owner:
        grants = default_permissions(TenantRole.OWNER)
    elif membership.permissions:
        grants = {key: bool(membership.permissions.get(key, False)) for key in PERMISSION_KEYS}
    else:
        grants = default_permissions(membership.role)

    return PermissionSet(role=membership.role, is_owner=membership.is_owner, grants=grants)
