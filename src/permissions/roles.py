"""Role-based default permissions inside a tenant."""

from __future__ import annotations

from dataclasses import dataclass, field

from src.core.types import TenantRole

PERMISSION_KEYS: tuple[str, ...] = (
    "view_dashboard",
    "view_athletes",
    "manage_athletes",
    "view_enrollments",
    "manage_enrollments",
    "view_trainings",
    "manage_trainings",
    "view_competitions",
    "manage_competitions",
    "view_games",
    "manage_games",
    "view_finance",
    "manage_finance",
    "view_monthly_fees",
    "manage_monthly_fees",
    "manage_settings",
    "manage_users",
)

# Member: view-only on sporting data, nothing financial.
_MEMBER_GRANTS = frozenset({
    "view_dashboard",
    "view_athletes",
    "view_enrollments",
    "view_trainings",
    "view_competitions",
    "view_games",
})

# Manager: runs day-to-day operations, sees finance, no users/settings.
_MANAGER_GRANTS = _MEMBER_GRANTS | {
    "manage_athletes",
    "manage_enrollments",
    "manage_trainings",
    "manage_competitions",
    "manage_games",
    "view_finance",
    "view_monthly_fees",
}


def default_permissions(role: TenantRole) -> dict[str, bool]:
    """Permission map a role gets when nothing is stored for the membership."""
    if role in (TenantRole.OWNER, TenantRole.ADMIN):
        granted: frozenset[str] = frozenset(PERMISSION_KEYS)
    elif role is TenantRole.MANAGER:
        granted = _MANAGER_GRANTS
    else:
        granted = _MEMBER_GRANTS
    return {key: key in granted for key in PERMISSION_KEYS}


@dataclass(frozen=True)
class PermissionSet:
    """Effective permissions of one identity in one tenant."""

    role: TenantRole = TenantRole.MEMBER
    is_owner: bool = False
    grants: dict[str, bool] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.is_owner or self.role in (TenantRole.OWNER, TenantRole.ADMIN)

    def has_permission(self, permission: str) -> bool:
        if self.is_owner:
            return True
        return self.grants.get(permission) is True

    def can_manage(self, resource: str) -> bool:
        return self.has_permission(f"manage_{resource}")

    def can_view(self, resource: str) -> bool:
        """Managing a resource implies viewing it."""
        return self.has_permission(f"view_{resource}") or self.can_manage(resource)
