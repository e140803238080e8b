"""Re-derive every mason's point balance and bag total from the ledger once.

Intended usage: cron or manual invocation after a data repair, independent of
the in-process reconciliation worker.

Example:
    python tooling/scripts/reconcile_points_ledger.py --trigger cron --batch-size 200
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile mason counters against the points ledger")
    parser.add_argument(
        "--trigger",
        default="manual",
        help="Label logged with the sweep summary to describe the invocation source.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=500,
        help="Number of accounts loaded per query page.",
    )
    return parser.parse_args()


async def _run(trigger: str, batch_size: int) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from fieldops_api.db.session import async_session, engine  # type: ignore import-position
    from fieldops_api.workers import LedgerReconciliationWorker  # type: ignore import-position

    worker = LedgerReconciliationWorker(
        async_session,  # type: ignore[arg-type]
        batch_size=batch_size,
        trigger_label=trigger,
    )
    try:
        return await worker.run_once(triggered_by=trigger)
    finally:
        await engine.dispose()


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.trigger, args.batch_size))
    logger.success(
        "Points ledger reconciliation completed",
        checked=summary.get("checked", 0),
        corrected=summary.get("corrected", 0),
        trigger=args.trigger,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
