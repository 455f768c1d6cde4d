import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from vod_payments.core.config import settings
from vod_payments.db.session import AsyncSessionLocal
from vod_payments.services.gateway_client import LanariPayClient
from vod_payments.services.payment_orchestrator import PaymentOrchestrator
from vod_payments.services.reconciler import Reconciler


async def run(older_than_minutes: int, limit: int) -> dict[str, int]:
    orchestrator = PaymentOrchestrator(
        session_factory=AsyncSessionLocal,
        gateway=LanariPayClient(settings),
        settings=settings,
    )
    return await Reconciler(orchestrator).sweep_pending(
        older_than=timedelta(minutes=older_than_minutes), limit=limit
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Poll stale pending MoMo payments and repair unsettled ones"
    )
    parser.add_argument("--older-than", type=int, default=10, help="minutes")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    stats = asyncio.run(run(args.older_than, args.limit))
    print("\n--- Reconciliation ---")
    for key, value in stats.items():
        print(f"  {key}: {value}")


if __name__ == "__main__":
    main()
