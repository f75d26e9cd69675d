"""Tenancy layer: memberships, current tenant selection, slugs."""

from src.tenancy.resolver import TenancyResolver
from src.tenancy.slug import generate_slug
from src.tenancy.snapshot import get_current_tenant_id_sync

__all__ = [
    "TenancyResolver",
    "generate_slug",
    "get_current_tenant_id_sync",
]
