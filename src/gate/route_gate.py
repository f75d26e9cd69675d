"""Route gate — maps (session, tenancy, entitlement, path) to a navigation decision.

Precedence, evaluated on every upstream change:
    1. session loading              -> SHOW_LOADING
    2. no identity                  -> REDIRECT_TO_SIGN_IN (keeps requested path)
    3. tenancy/entitlement loading  -> SHOW_LOADING
    4. no access, path not exempt   -> REDIRECT_TO_BILLING
    5. otherwise                    -> RENDER
"""

from __future__ import annotations

import functools
from collections.abc import Sequence
from typing import Any, Callable, TypeVar

from src.core.constants import BILLING_PATH, ENTITLEMENT_EXEMPT_PATHS, SIGN_IN_PATH
from src.core.logging import get_logger
from src.core.types import (
    EntitlementView,
    GateDecision,
    GateOutcome,
    SessionState,
    TenancyState,
)
from src.entitlement.evaluator import EntitlementEvaluator
from src.session.store import SessionStore
from src.tenancy.resolver import TenancyResolver

log = get_logger(__name__)

T = TypeVar("T")
DecisionListener = Callable[[GateDecision], None]


def _normalize_path(path: str) -> str:
    bare = path.split("?", 1)[0].split("#", 1)[0]
    return bare.rstrip("/") or "/"


def is_exempt(path: str, exempt_paths: Sequence[str] = ENTITLEMENT_EXEMPT_PATHS) -> bool:
    """True for an exempt path or anything below it (``/settings/users``)."""
    target = _normalize_path(path)
    for exempt in exempt_paths:
        base = _normalize_path(exempt)
        if target == base or target.startswith(base + "/"):
            return True
    return False


def evaluate_route(
    session: SessionState,
    tenancy: TenancyState,
    entitlement: EntitlementView,
    path: str,
    *,
    allow_expired_trial: bool = False,
    exempt_paths: Sequence[str] = ENTITLEMENT_EXEMPT_PATHS,
    sign_in_path: str = SIGN_IN_PATH,
    billing_path: str = BILLING_PATH,
) -> GateDecision:
    """Pure gate policy. No I/O, no framework.

    Tenancy and entitlement only exist for a signed-in identity, so once the
    session has settled without one their leftover state is ignored.
    """
    if session.loading:
        return GateDecision(outcome=GateOutcome.SHOW_LOADING, path=path)

    if session.identity is None:
        return GateDecision(
            outcome=GateOutcome.REDIRECT_TO_SIGN_IN,
            path=path,
            redirect_to=sign_in_path,
            next_path=path,
        )

    if tenancy.loading or entitlement.loading:
        return GateDecision(outcome=GateOutcome.SHOW_LOADING, path=path)

    if (
        not entitlement.can_access_app
        and not allow_expired_trial
        and not is_exempt(path, exempt_paths)
    ):
        return GateDecision(
            outcome=GateOutcome.REDIRECT_TO_BILLING,
            path=path,
            redirect_to=billing_path,
        )

    return GateDecision(outcome=GateOutcome.RENDER, path=path)


class RouteGate:
    """Reactive wrapper around :func:`evaluate_route` for the live pipeline."""

    def __init__(
        self,
        session: SessionStore,
        tenancy: TenancyResolver,
        entitlement: EntitlementEvaluator,
        *,
        exempt_paths: Sequence[str] = ENTITLEMENT_EXEMPT_PATHS,
        sign_in_path: str = SIGN_IN_PATH,
        billing_path: str = BILLING_PATH,
    ) -> None:
        self._session = session
        self._tenancy = tenancy
        self._entitlement = entitlement
        self._exempt_paths = tuple(exempt_paths)
        self._sign_in_path = sign_in_path
        self._billing_path = billing_path

    def evaluate(self, path: str, *, allow_expired_trial: bool = False) -> GateDecision:
        """Decide for ``path`` against the current states.

        The trial countdown is recomputed against "now" first, so a tenant
        whose trial ran out since the last fetch is gated immediately.
        """
        self._entitlement.tick()
        return evaluate_route(
            self._session.state,
            self._tenancy.state,
            self._entitlement.state,
            path,
            allow_expired_trial=allow_expired_trial,
            exempt_paths=self._exempt_paths,
            sign_in_path=self._sign_in_path,
            billing_path=self._billing_path,
        )

    def watch(
        self,
        path: str,
        listener: DecisionListener,
        *,
        allow_expired_trial: bool = False,
    ) -> Callable[[], None]:
        """Call ``listener`` now and whenever the decision for ``path`` changes."""
        last: list[GateDecision] = []

        def _recompute(_state: Any = None) -> None:
            decision = evaluate_route(
                self._session.state,
                self._tenancy.state,
                self._entitlement.state,
                path,
                allow_expired_trial=allow_expired_trial,
                exempt_paths=self._exempt_paths,
                sign_in_path=self._sign_in_path,
                billing_path=self._billing_path,
            )
            if last and last[0] == decision:
                return
            last[:] = [decision]
            log.debug("gate_decision", path=path, outcome=decision.outcome.value)
            listener(decision)

        unsubscribers = [
            self._session.subscribe(_recompute),
            self._tenancy.subscribe(_recompute),
            self._entitlement.subscribe(_recompute),
        ]
        _recompute()

        def _unsubscribe() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return _unsubscribe

    def protected(
        self,
        view: Callable[..., T],
        *,
        allow_expired_trial: bool = False,
    ) -> Callable[..., tuple[GateDecision, T | None]]:
        """Wrap a page view so it only runs when the gate says RENDER.

        Billing and settings pages pass ``allow_expired_trial=True``.
        """

        @functools.wraps(view)
        def _guarded(path: str, *args: Any, **kwargs: Any) -> tuple[GateDecision, T | None]:
            decision = self.evaluate(path, allow_expired_trial=allow_expired_trial)
            if not decision.renders:
                return decision, None
            return decision, view(*args, **kwargs)

        return _guarded
