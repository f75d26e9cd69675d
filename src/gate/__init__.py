"""Navigation gating over the session/tenancy/entitlement pipeline."""

from src.gate.route_gate import RouteGate, evaluate_route, is_exempt

__all__ = ["RouteGate", "evaluate_route", "is_exempt"]
