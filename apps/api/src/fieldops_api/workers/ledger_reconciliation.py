"""Worker that re-derives mason point and bag counters from the ledger."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.core.settings import settings
from fieldops_api.services.loyalty.ledger import PointsLedgerService

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class LedgerReconciliationWorker:
    """Periodically resets drifted ``points_balance``/``bags_lifted`` caches."""

    # meta: worker: ledger-reconciliation

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        batch_size: int = 500,
        trigger_label: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.ledger_reconciliation_interval_seconds
        self._batch_size = batch_size
        self._trigger_label = trigger_label or settings.ledger_reconciliation_trigger_label
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Ledger reconciliation worker started",
            interval_seconds=self.interval_seconds,
            batch_size=self._batch_size,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Ledger reconciliation worker stopped")

    async def run_once(self, *, triggered_by: str | None = None) -> Dict[str, int]:
        """Reconcile every account once and return sweep counts."""

        trigger = triggered_by or self._trigger_label
        session = await self._ensure_session()
        async with session as managed_session:
            outcomes = await PointsLedgerService(managed_session).reconcile_all(batch_size=self._batch_size)

        summary = {
            "checked": len(outcomes),
            "corrected": sum(1 for outcome in outcomes if outcome.corrected),
        }
        logger.info("Ledger reconciliation sweep completed", trigger=trigger, **summary)
        return summary

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover - logged and retried next interval
                logger.exception("Ledger reconciliation iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session
