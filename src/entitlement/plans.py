"""Subscription plan catalog, loaded from ``config/plans.yaml``."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from src.core.exceptions import UnknownPlanError
from src.core.logging import get_logger

log = get_logger(__name__)

_DEFAULT_PLANS_FILE = Path(__file__).resolve().parent.parent.parent / "config" / "plans.yaml"


@dataclass(frozen=True)
class Plan:
    """A purchasable plan shown on the billing page."""

    plan_id: str
    name: str
    price: float
    currency: str
    features: tuple[str, ...] = ()
    popular: bool = False

    def __post_init__(self) -> None:
        if self.price < 0:
            msg = f"plan price cannot be negative: {self.price}"
            raise ValueError(msg)


@dataclass(frozen=True)
class PlanCatalog:
    plans: dict[str, Plan] = field(default_factory=dict)

    def get(self, plan_id: str) -> Plan:
        """Return the plan or raise UnknownPlanError."""
        plan = self.plans.get(plan_id)
        if plan is None:
            msg = f"Unknown plan: {plan_id!r}"
            raise UnknownPlanError(msg, {"available": sorted(self.plans)})
        return plan

    def __contains__(self, plan_id: object) -> bool:
        return plan_id in self.plans

    def __iter__(self) -> Iterator[Plan]:
        return iter(self.plans.values())


def load_plans(path: Path | None = None) -> PlanCatalog:
    """Parse the plan catalog YAML."""
    plans_file = path or _DEFAULT_PLANS_FILE
    with plans_file.open(encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    currency = str(raw.get("currency", "BRL"))
    plans: dict[str, Plan] = {}
    for plan_id, section in (raw.get("plans") or {}).items():
        if not isinstance(section, dict):
            continue
        plans[plan_id] = Plan(
            plan_id=plan_id,
            name=str(section.get("name", plan_id)),
            price=float(section.get("price", 0.0)),
            currency=currency,
            features=tuple(str(f) for f in section.get("features", [])),
            popular=bool(section.get("popular", False)),
        )

    log.debug("plans_loaded", path=str(plans_file), count=len(plans))
    return PlanCatalog(plans=plans)
