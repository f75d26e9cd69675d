"""Pure trial/subscription arithmetic.

Everything here is a function of (created_at, subscription_status,
subscription_plan, now). There is no stored trial end date; the trial
clock is always re-derived from the tenant's creation timestamp.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from src.core.constants import SECONDS_PER_DAY, SUBSCRIPTION_ACTIVE, TRIAL_DAYS
from src.core.types import EntitlementState, EntitlementStatus, Tenant


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def trial_end(created_at: datetime, trial_days: int = TRIAL_DAYS) -> datetime:
    """End of the trial window: creation time plus ``trial_days`` whole days."""
    return _as_utc(created_at) + timedelta(days=trial_days)


def trial_days_remaining(
    created_at: datetime,
    now: datetime,
    trial_days: int = TRIAL_DAYS,
) -> int:
    """Ceiling of the real-valued day difference, floored at zero.

    A partial day counts as a full remaining day, so the count only drops
    to 0 once the trial end has actually passed.
    """
    remaining = (trial_end(created_at, trial_days) - _as_utc(now)).total_seconds()
    return max(0, math.ceil(remaining / SECONDS_PER_DAY))


def has_active_subscription(status: str | None, plan: str | None) -> bool:
    """Active status AND a non-empty plan. Either alone is not enough."""
    return status == SUBSCRIPTION_ACTIVE and bool(plan and plan.strip())


def compute_entitlement(
    tenant: Tenant,
    now: datetime,
    trial_days: int = TRIAL_DAYS,
) -> EntitlementState:
    """Derive the tenant's entitlement at ``now``. Idempotent for a fixed ``now``."""
    days_left = trial_days_remaining(tenant.created_at, now, trial_days)
    subscribed = has_active_subscription(tenant.subscription_status, tenant.subscription_plan)
    expired = days_left == 0

    if subscribed:
        status = EntitlementStatus.ACTIVE
    elif expired:
        status = EntitlementStatus.EXPIRED
    else:
        status = EntitlementStatus.TRIAL

    return EntitlementState(
        trial_days_remaining=days_left,
        is_trial_expired=expired,
        has_active_subscription=subscribed,
        status=status,
        trial_ends_at=trial_end(tenant.created_at, trial_days),
    )
