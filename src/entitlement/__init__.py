"""Entitlement layer: trial clock, subscription state, plan catalog."""

from src.entitlement.calculator import (
    compute_entitlement,
    has_active_subscription,
    trial_days_remaining,
    trial_end,
)
from src.entitlement.evaluator import EntitlementEvaluator
from src.entitlement.plans import Plan, PlanCatalog, load_plans

__all__ = [
    "EntitlementEvaluator",
    "Plan",
    "PlanCatalog",
    "compute_entitlement",
    "has_active_subscription",
    "load_plans",
    "trial_days_remaining",
    "trial_end",
]
