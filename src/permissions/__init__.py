"""Per-tenant role permissions."""

from src.permissions.loader import load_permissions
from src.permissions.roles import PERMISSION_KEYS, PermissionSet, default_permissions

__all__ = [
    "PERMISSION_KEYS",
    "PermissionSet",
    "default_permissions",
    "load_permissions",
]
