"""Reward catalogue and redemption fulfillment endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.api.dependencies.session import require_operator
from fieldops_api.api.errors import http_error_for
from fieldops_api.db.session import get_session
from fieldops_api.models.loyalty import RedemptionStatus, Reward, RewardRedemption
from fieldops_api.models.user import User
from fieldops_api.services.loyalty import RedemptionStateMachine


router = APIRouter(tags=["rewards"])


class RewardResponse(BaseModel):
    id: int
    itemName: str
    pointCost: int
    totalAvailableQuantity: int
    stock: int
    isActive: bool


class RedemptionCreateRequest(BaseModel):
    masonId: UUID
    rewardId: int
    quantity: int = Field(1, gt=0)
    deliveryName: Optional[str] = Field(None, max_length=160)
    deliveryPhone: Optional[str] = Field(None, max_length=20)
    deliveryAddress: Optional[str] = None


class RedemptionTransitionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["approved", "shipped", "delivered", "rejected"]
    fulfillmentNotes: Optional[str] = Field(None, max_length=500)


class RedemptionResponse(BaseModel):
    id: UUID
    masonId: UUID
    rewardId: int
    quantity: int
    status: RedemptionStatus
    pointsDebited: int
    fulfillmentNotes: Optional[str]
    deliveryName: Optional[str]
    deliveryPhone: Optional[str]
    deliveryAddress: Optional[str]
    createdAt: datetime
    updatedAt: datetime


class RedemptionEnvelope(BaseModel):
    success: bool = True
    message: str
    data: RedemptionResponse


def _serialize(redemption: RewardRedemption) -> RedemptionResponse:
    return RedemptionResponse(
        id=redemption.id,
        masonId=redemption.mason_id,
        rewardId=redemption.reward_id,
        quantity=int(redemption.quantity),
        status=redemption.status,
        pointsDebited=int(redemption.points_debited),
        fulfillmentNotes=redemption.fulfillment_notes,
        deliveryName=redemption.delivery_name,
        deliveryPhone=redemption.delivery_phone,
        deliveryAddress=redemption.delivery_address,
        createdAt=redemption.created_at,
        updatedAt=redemption.updated_at,
    )


@router.get("/rewards", response_model=list[RewardResponse])
async def list_rewards(session: AsyncSession = Depends(get_session)) -> list[RewardResponse]:
    result = await session.execute(
        select(Reward).where(Reward.is_active.is_(True)).order_by(Reward.item_name)
    )
    return [
        RewardResponse(
            id=reward.id,
            itemName=reward.item_name,
            pointCost=int(reward.point_cost),
            totalAvailableQuantity=int(reward.total_available_quantity),
            stock=int(reward.stock),
            isActive=bool(reward.is_active),
        )
        for reward in result.scalars()
    ]


@router.post(
    "/rewards-redemption",
    response_model=RedemptionEnvelope,
    status_code=status.HTTP_201_CREATED,
)
async def place_redemption(
    payload: RedemptionCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> RedemptionEnvelope:
    """Place a redemption; points are debited now, stock only on approval."""

    try:
        redemption = await RedemptionStateMachine(session).place(
            mason_id=payload.masonId,
            reward_id=payload.rewardId,
            quantity=payload.quantity,
            delivery_name=payload.deliveryName,
            delivery_phone=payload.deliveryPhone,
            delivery_address=payload.deliveryAddress,
        )
    except Exception as exc:
        raise http_error_for(exc) from exc
    return RedemptionEnvelope(message="Redemption placed.", data=_serialize(redemption))


@router.get("/rewards-redemption/{redemption_id}", response_model=RedemptionEnvelope)
async def get_redemption(
    redemption_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> RedemptionEnvelope:
    try:
        redemption = await RedemptionStateMachine(session).get(redemption_id)
    except Exception as exc:
        raise http_error_for(exc) from exc
    return RedemptionEnvelope(message="Redemption fetched.", data=_serialize(redemption))


@router.patch("/rewards-redemption/{redemption_id}", response_model=RedemptionEnvelope)
async def transition_redemption(
    redemption_id: UUID,
    payload: RedemptionTransitionRequest,
    session: AsyncSession = Depends(get_session),
    operator: User = Depends(require_operator),
) -> RedemptionEnvelope:
    try:
        redemption = await RedemptionStateMachine(session).transition(
            redemption_id=redemption_id,
            target_status=RedemptionStatus(payload.status),
            fulfillment_notes=payload.fulfillmentNotes,
        )
    except Exception as exc:
        raise http_error_for(exc) from exc
    return RedemptionEnvelope(
        message=f"Redemption status updated to '{redemption.status.value}'.",
        data=_serialize(redemption),
    )
