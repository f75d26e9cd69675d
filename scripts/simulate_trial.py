"""Trial simulator — back-date a club and show what the access gate decides.

Usage:
    python scripts/simulate_trial.py                      # in-memory demo, 8 days old
    python scripts/simulate_trial.py --days 3
    python scripts/simulate_trial.py --backend supabase --email me@club.com --password ...
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config.settings import get_settings
from src.app import AppContext, build_pipeline
from src.backends.memory import InMemoryBackend
from src.backends.supabase_backend import SupabaseBackend, create_supabase_backend
from src.core.logging import get_logger, setup_logging
from src.core.types import TenantRole

settings = get_settings()
setup_logging(settings.log_level, settings.log_json)
log = get_logger(__name__)

DEMO_EMAIL = "owner@demo.club"
DEMO_PASSWORD = "demo-password"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate a trial of N days")
    parser.add_argument("--backend", choices=["memory", "supabase"], default="memory")
    parser.add_argument(
        "--days", type=int, default=8,
        help="How many days ago the club was created (default: 8, i.e. expired)",
    )
    parser.add_argument("--email", default=DEMO_EMAIL)
    parser.add_argument("--password", default=DEMO_PASSWORD)
    parser.add_argument("--path", default="/dashboard", help="Route to evaluate")
    return parser.parse_args()


def _seed_demo(backend: InMemoryBackend, email: str, password: str) -> None:
    identity = backend.add_user(email, password, metadata={"full_name": "Demo Owner"})
    club = backend.add_tenant("Esporte Clube Demo")
    backend.add_membership(club.id, identity.id, TenantRole.OWNER, is_owner=True)
    backend.set_profile(identity.id, club.id)


def _print_report(app: AppContext, path: str, days: int) -> None:
    tenant = app.tenancy.current_tenant
    entitlement = app.entitlement.entitlement
    decision = app.gate.evaluate(path)

    print(f"\n{'=' * 56}")
    print(f"  Trial simulation ({days} day(s) since creation)")
    print(f"{'=' * 56}")
    print(f"  Club:            {tenant.name if tenant else '-'}")
    if entitlement is None:
        print("  Entitlement:     unavailable (access fails open)")
    else:
        print(f"  Status:          {entitlement.status.value}")
        print(f"  Days remaining:  {entitlement.trial_days_remaining}")
        print(f"  Trial ends at:   {entitlement.trial_ends_at:%Y-%m-%d %H:%M} UTC")
    print(f"  Can access app:  {app.entitlement.can_access_app}")
    print(f"  Gate for {path}: {decision.outcome.value}")
    if decision.redirect_to:
        print(f"  Redirect to:     {decision.redirect_to}")
    print(f"{'=' * 56}\n")


async def main() -> int:
    args = _parse_args()

    backend: InMemoryBackend | SupabaseBackend
    if args.backend == "memory":
        backend = InMemoryBackend(storage_key=settings.auth_storage_key)
        _seed_demo(backend, args.email, args.password)
    else:
        backend = await create_supabase_backend(settings)

    app = build_pipeline(backend, backend, backend, settings=settings)
    await app.start()
    try:
        result = await app.session.sign_in(args.email, args.password)
        if not result.ok:
            log.error("simulation_sign_in_failed", error=result.error)
            return 1
        await app.settle()

        tenant = app.tenancy.current_tenant
        if tenant is None:
            log.error("simulation_no_tenant", email=args.email)
            return 1

        created_at = datetime.now(timezone.utc) - timedelta(days=args.days)
        await backend.set_tenant_created_at(tenant.id, created_at)
        log.info("tenant_backdated", tenant_id=tenant.id, created_at=created_at.isoformat())

        await app.entitlement.refresh()
        _print_report(app, args.path, args.days)
        return 0
    finally:
        await app.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
