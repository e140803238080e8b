"""Reward redemption placement and fulfillment state machine."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.models.loyalty import (
    LedgerSourceType,
    RedemptionStatus,
    Reward,
    RewardRedemption,
)
from fieldops_api.models.mason import Mason
from fieldops_api.observability.loyalty import get_loyalty_store
from fieldops_api.services.loyalty.errors import (
    ApprovalError,
    InsufficientStockError,
    InvalidTransitionError,
    RecordNotFoundError,
    TransitionConflictError,
)
from fieldops_api.services.loyalty.ledger import PointsLedgerService


class RedemptionStateMachine:
    """Drive redemptions through placed -> approved -> shipped -> delivered.

    Points are debited when the redemption is placed. Approval reserves stock,
    rejection refunds the points and returns any stock already reserved.
    """

    _ALLOWED_TRANSITIONS: dict[RedemptionStatus, set[RedemptionStatus]] = {
        RedemptionStatus.PLACED: {RedemptionStatus.APPROVED, RedemptionStatus.REJECTED},
        RedemptionStatus.APPROVED: {
            RedemptionStatus.SHIPPED,
            RedemptionStatus.DELIVERED,
            RedemptionStatus.REJECTED,
        },
        RedemptionStatus.SHIPPED: {RedemptionStatus.DELIVERED},
        RedemptionStatus.DELIVERED: set(),
        RedemptionStatus.REJECTED: set(),
    }

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._ledger = PointsLedgerService(session)

    async def place(
        self,
        *,
        mason_id: UUID,
        reward_id: int,
        quantity: int = 1,
        delivery_name: str | None = None,
        delivery_phone: str | None = None,
        delivery_address: str | None = None,
    ) -> RewardRedemption:
        """Create a placed redemption and debit its points in one transaction."""

        if quantity <= 0:
            raise ValueError("quantity must be positive")

        try:
            reward = await self._session.get(Reward, reward_id)
            if reward is None:
                raise RecordNotFoundError(f"Reward {reward_id} not found")
            if not reward.is_active:
                raise ApprovalError(f"Reward {reward_id} is not available for redemption")
            exists = await self._session.scalar(select(Mason.id).where(Mason.id == mason_id))
            if exists is None:
                raise RecordNotFoundError(f"Mason {mason_id} not found")

            points = int(reward.point_cost) * quantity
            redemption = RewardRedemption(
                mason_id=mason_id,
                reward_id=reward_id,
                quantity=quantity,
                status=RedemptionStatus.PLACED,
                points_debited=points,
                delivery_name=delivery_name,
                delivery_phone=delivery_phone,
                delivery_address=delivery_address,
            )
            self._session.add(redemption)
            await self._session.flush()

            if points:
                await self._ledger.record_entry(
                    mason_id,
                    source_type=LedgerSourceType.REDEMPTION,
                    source_id=redemption.id,
                    points=-points,
                    memo=f"Redeemed {quantity} x {reward.item_name}.",
                    require_cover=True,
                )
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        await self._session.refresh(redemption)
        logger.info(
            "Reward redemption placed",
            redemption_id=str(redemption.id),
            mason_id=str(mason_id),
            reward_id=reward_id,
            quantity=quantity,
            points_debited=points,
        )
        return redemption

    async def transition(
        self,
        *,
        redemption_id: UUID,
        target_status: RedemptionStatus,
        fulfillment_notes: str | None = None,
    ) -> RewardRedemption:
        try:
            redemption = await self._get_redemption(redemption_id)
            current_status = redemption.status
            self._ensure_allowed(current_status, target_status)

            values: dict[str, Any] = {"status": target_status}
            if fulfillment_notes is not None:
                values["fulfillment_notes"] = fulfillment_notes
            result = await self._session.execute(
                update(RewardRedemption)
                .where(RewardRedemption.id == redemption.id, RewardRedemption.status == current_status)
                .values(**values)
            )
            if result.rowcount == 0:
                raise TransitionConflictError(
                    f"Redemption {redemption_id} changed status concurrently; expected {current_status.value}"
                )

            if current_status == RedemptionStatus.PLACED and target_status == RedemptionStatus.APPROVED:
                await self._reserve_stock(redemption)
            elif target_status == RedemptionStatus.REJECTED:
                await self._refund(redemption, fulfillment_notes)
                if current_status == RedemptionStatus.APPROVED:
                    await self._return_stock(redemption)

            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        await self._session.refresh(redemption)
        get_loyalty_store().record_transition("redemption", current_status.value, target_status.value)
        logger.info(
            "Reward redemption status transitioned",
            redemption_id=str(redemption.id),
            reward_id=redemption.reward_id,
            from_status=current_status.value,
            to_status=target_status.value,
        )
        return redemption

    async def get(self, redemption_id: UUID) -> RewardRedemption:
        return await self._get_redemption(redemption_id)

    def _ensure_allowed(self, current: RedemptionStatus, target: RedemptionStatus) -> None:
        if target == current:
            raise InvalidTransitionError("redemption", current, target, "status unchanged")
        if target not in self._ALLOWED_TRANSITIONS.get(current, set()):
            reason = None
            if current in {RedemptionStatus.DELIVERED, RedemptionStatus.REJECTED}:
                reason = f"{current.value} is terminal"
            raise InvalidTransitionError("redemption", current, target, reason)

    async def _reserve_stock(self, redemption: RewardRedemption) -> None:
        quantity = int(redemption.quantity)
        result = await self._session.execute(
            update(Reward)
            .where(Reward.id == redemption.reward_id, Reward.stock >= quantity)
            .values(stock=Reward.stock - quantity)
        )
        if result.rowcount == 0:
            available = await self._session.scalar(
                select(Reward.stock).where(Reward.id == redemption.reward_id)
            )
            if available is None:
                raise RecordNotFoundError(f"Reward {redemption.reward_id} not found")
            raise InsufficientStockError(redemption.reward_id, int(available), quantity)

    async def _return_stock(self, redemption: RewardRedemption) -> None:
        await self._session.execute(
            update(Reward)
            .where(Reward.id == redemption.reward_id)
            .values(stock=Reward.stock + int(redemption.quantity))
        )

    async def _refund(self, redemption: RewardRedemption, reason: str | None) -> None:
        points = int(redemption.points_debited)
        if not points:
            return
        memo = f"Refund: redemption {redemption.id} rejected."
        if reason:
            memo = f"{memo} {reason}"
        await self._ledger.record_entry(
            redemption.mason_id,
            source_type=LedgerSourceType.ADJUSTMENT,
            source_id=redemption.id,
            points=points,
            memo=memo,
        )

    async def _get_redemption(self, redemption_id: UUID) -> RewardRedemption:
        stmt = (
            select(RewardRedemption)
            .where(RewardRedemption.id == redemption_id)
            .execution_options(populate_existing=True)
        )
        redemption = await self._session.scalar(stmt)
        if redemption is None:
            raise RecordNotFoundError(f"Redemption {redemption_id} not found")
        return redemption
