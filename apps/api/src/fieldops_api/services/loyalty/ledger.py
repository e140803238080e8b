"""Points ledger writes and balance reconciliation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.models.loyalty import (
    BagLift,
    BagLiftStatus,
    LedgerSourceType,
    PointsLedgerEntry,
)
from fieldops_api.models.mason import Mason
from fieldops_api.observability.loyalty import get_loyalty_store
from fieldops_api.services.loyalty.errors import InsufficientPointsError, RecordNotFoundError


@dataclass(slots=True)
class LedgerReconciliation:
    """Outcome of re-deriving an account's cached counters."""

    mason_id: UUID
    balance_before: int
    balance_after: int
    bags_before: int
    bags_after: int

    @property
    def corrected(self) -> bool:
        return self.balance_before != self.balance_after or self.bags_before != self.bags_after

    def as_dict(self) -> dict[str, Any]:
        return {
            "masonId": str(self.mason_id),
            "pointsBalanceBefore": self.balance_before,
            "pointsBalanceAfter": self.balance_after,
            "bagsLiftedBefore": self.bags_before,
            "bagsLiftedAfter": self.bags_after,
            "corrected": self.corrected,
        }


class PointsLedgerService:
    """Appends ledger entries and keeps the cached account counters in step.

    Writes never commit: they join the caller's transaction so the entry, the
    balance increment and the record status change land together.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def record_entry(
        self,
        mason_id: UUID,
        *,
        source_type: LedgerSourceType,
        points: int,
        source_id: UUID | None = None,
        memo: str | None = None,
        bags_delta: int = 0,
        require_cover: bool = False,
    ) -> PointsLedgerEntry:
        """Insert one ledger entry and apply ``points`` to the cached balance.

        With ``require_cover`` the balance increment is conditional on the
        resulting balance staying non-negative.
        """

        if points == 0:
            raise ValueError("Ledger entries require a non-zero amount")

        entry = PointsLedgerEntry(
            mason_id=mason_id,
            source_type=source_type,
            source_id=source_id,
            points=points,
            memo=memo,
        )
        self._db.add(entry)

        values: dict[str, Any] = {"points_balance": Mason.points_balance + points}
        if bags_delta:
            values["bags_lifted"] = Mason.bags_lifted + bags_delta
        stmt = update(Mason).where(Mason.id == mason_id)
        if require_cover:
            stmt = stmt.where(Mason.points_balance + points >= 0)
        result = await self._db.execute(stmt.values(**values))
        if result.rowcount == 0:
            if require_cover:
                raise InsufficientPointsError(f"Mason {mason_id} cannot cover a debit of {-points} points")
            raise RecordNotFoundError(f"Mason {mason_id} not found")

        await self._db.flush()
        get_loyalty_store().record_ledger_entry(source_type.value, points)
        logger.info(
            "Recorded points ledger entry",
            mason_id=str(mason_id),
            source_type=source_type.value,
            source_id=str(source_id) if source_id else None,
            points=points,
            bags_delta=bags_delta,
        )
        return entry

    async def adjust_bags(self, mason_id: UUID, bags_delta: int) -> None:
        """Move the cached bag counter without a points entry (zero-point lifts)."""

        result = await self._db.execute(
            update(Mason)
            .where(Mason.id == mason_id)
            .values(bags_lifted=Mason.bags_lifted + bags_delta)
        )
        if result.rowcount == 0:
            raise RecordNotFoundError(f"Mason {mason_id} not found")

    async def ledger_total(self, mason_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(PointsLedgerEntry.points), 0)).where(
            PointsLedgerEntry.mason_id == mason_id
        )
        return int(await self._db.scalar(stmt) or 0)

    async def approved_bag_total(self, mason_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(BagLift.bag_count), 0)).where(
            BagLift.mason_id == mason_id,
            BagLift.status == BagLiftStatus.APPROVED,
        )
        return int(await self._db.scalar(stmt) or 0)

    async def list_entries(self, mason_id: UUID, *, limit: int = 100) -> list[PointsLedgerEntry]:
        stmt = (
            select(PointsLedgerEntry)
            .where(PointsLedgerEntry.mason_id == mason_id)
            .order_by(PointsLedgerEntry.created_at.desc(), PointsLedgerEntry.id.desc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars())

    async def reconcile(self, mason_id: UUID) -> LedgerReconciliation:
        """Reset the cached counters from the ledger and approved lifts, then commit."""

        try:
            mason = await self._db.scalar(
                select(Mason)
                .where(Mason.id == mason_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if mason is None:
                raise RecordNotFoundError(f"Mason {mason_id} not found")

            outcome = LedgerReconciliation(
                mason_id=mason_id,
                balance_before=int(mason.points_balance or 0),
                balance_after=await self.ledger_total(mason_id),
                bags_before=int(mason.bags_lifted or 0),
                bags_after=await self.approved_bag_total(mason_id),
            )
            if outcome.corrected:
                mason.points_balance = outcome.balance_after
                mason.bags_lifted = outcome.bags_after
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        if outcome.corrected:
            logger.warning(
                "Corrected drifted mason counters",
                mason_id=str(mason_id),
                balance_before=outcome.balance_before,
                balance_after=outcome.balance_after,
                bags_before=outcome.bags_before,
                bags_after=outcome.bags_after,
            )
        return outcome

    async def reconcile_all(self, *, batch_size: int = 500) -> list[LedgerReconciliation]:
        """Reconcile every account, one transaction per account."""

        outcomes: list[LedgerReconciliation] = []
        offset = 0
        while True:
            ids = list(
                (
                    await self._db.execute(
                        select(Mason.id).order_by(Mason.id).offset(offset).limit(batch_size)
                    )
                ).scalars()
            )
            if not ids:
                break
            for mason_id in ids:
                outcomes.append(await self.reconcile(mason_id))
            offset += len(ids)
        return outcomes
