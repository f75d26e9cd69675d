"""Process-wide, read-only snapshot of the current tenant id.

Helpers that build requests outside the reactive pipeline read the tenant
id here without subscribing. The value is the LAST KNOWN selection and may
lag the resolver by one update; the resolver's state stays authoritative.
"""

from __future__ import annotations

_current_tenant_id: str | None = None


def get_current_tenant_id_sync() -> str | None:
    """Last known current tenant id, or None."""
    return _current_tenant_id


def publish_current_tenant_id(tenant_id: str | None) -> None:
    """Only the tenancy resolver should call this."""
    global _current_tenant_id  # noqa: PLW0603
    _current_tenant_id = tenant_id
