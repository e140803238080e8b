"""Bag lift submission and approval endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.api.dependencies.session import require_operator
from fieldops_api.api.errors import http_error_for
from fieldops_api.db.session import get_session
from fieldops_api.models.loyalty import BagLift, BagLiftStatus
from fieldops_api.models.user import User
from fieldops_api.services.loyalty import BagLiftStateMachine


router = APIRouter(prefix="/bag-lifts", tags=["bag-lifts"])


class BagLiftCreateRequest(BaseModel):
    masonId: UUID
    bagCount: int = Field(..., gt=0)
    purchaseDate: datetime
    dealerId: Optional[str] = None
    imageUrl: Optional[str] = None
    siteId: Optional[str] = None


class BagLiftTransitionRequest(BaseModel):
    status: Literal["approved", "rejected", "pending"]
    memo: Optional[str] = Field(None, max_length=500)
    bagCount: Optional[int] = Field(None, gt=0)
    purchaseDate: Optional[datetime] = None
    imageUrl: Optional[str] = None
    dealerId: Optional[str] = None
    siteId: Optional[str] = None
    siteKeyPersonName: Optional[str] = None
    siteKeyPersonPhone: Optional[str] = Field(None, max_length=20)
    verificationSiteImageUrl: Optional[str] = None
    verificationProofImageUrl: Optional[str] = None


class BagLiftResponse(BaseModel):
    id: UUID
    masonId: UUID
    dealerId: Optional[str]
    purchaseDate: datetime
    bagCount: int
    pointsCredited: int
    status: BagLiftStatus
    imageUrl: Optional[str]
    siteId: Optional[str]
    siteKeyPersonName: Optional[str]
    siteKeyPersonPhone: Optional[str]
    verificationSiteImageUrl: Optional[str]
    verificationProofImageUrl: Optional[str]
    approvedBy: Optional[UUID]
    approvedAt: Optional[datetime]
    reversedAt: Optional[datetime]
    createdAt: datetime


class BagLiftEnvelope(BaseModel):
    success: bool = True
    message: str
    data: BagLiftResponse


_VERIFICATION_FIELDS = {
    "dealerId": "dealer_id",
    "siteId": "site_id",
    "siteKeyPersonName": "site_key_person_name",
    "siteKeyPersonPhone": "site_key_person_phone",
    "verificationSiteImageUrl": "verification_site_image_url",
    "verificationProofImageUrl": "verification_proof_image_url",
}
_CORRECTION_FIELDS = {
    "bagCount": "bag_count",
    "purchaseDate": "purchase_date",
    "imageUrl": "image_url",
}


def _serialize(lift: BagLift) -> BagLiftResponse:
    return BagLiftResponse(
        id=lift.id,
        masonId=lift.mason_id,
        dealerId=lift.dealer_id,
        purchaseDate=lift.purchase_date,
        bagCount=int(lift.bag_count),
        pointsCredited=int(lift.points_credited),
        status=lift.status,
        imageUrl=lift.image_url,
        siteId=lift.site_id,
        siteKeyPersonName=lift.site_key_person_name,
        siteKeyPersonPhone=lift.site_key_person_phone,
        verificationSiteImageUrl=lift.verification_site_image_url,
        verificationProofImageUrl=lift.verification_proof_image_url,
        approvedBy=lift.approved_by,
        approvedAt=lift.approved_at,
        reversedAt=lift.reversed_at,
        createdAt=lift.created_at,
    )


@router.post("", response_model=BagLiftEnvelope, status_code=status.HTTP_201_CREATED)
async def create_bag_lift(
    payload: BagLiftCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> BagLiftEnvelope:
    try:
        lift = await BagLiftStateMachine(session).create(
            mason_id=payload.masonId,
            bag_count=payload.bagCount,
            purchase_date=payload.purchaseDate,
            dealer_id=payload.dealerId,
            image_url=payload.imageUrl,
            site_id=payload.siteId,
        )
    except Exception as exc:
        raise http_error_for(exc) from exc
    return BagLiftEnvelope(message="Bag lift submitted.", data=_serialize(lift))


@router.get("/{bag_lift_id}", response_model=BagLiftEnvelope)
async def get_bag_lift(bag_lift_id: UUID, session: AsyncSession = Depends(get_session)) -> BagLiftEnvelope:
    try:
        lift = await BagLiftStateMachine(session).get(bag_lift_id)
    except Exception as exc:
        raise http_error_for(exc) from exc
    return BagLiftEnvelope(message="Bag lift fetched.", data=_serialize(lift))


@router.patch("/{bag_lift_id}", response_model=BagLiftEnvelope)
async def transition_bag_lift(
    bag_lift_id: UUID,
    payload: BagLiftTransitionRequest,
    session: AsyncSession = Depends(get_session),
    operator: User = Depends(require_operator),
) -> BagLiftEnvelope:
    """Approve, reject or reverse a lift; the operator is recorded as approver."""

    provided = payload.model_dump(exclude_unset=True)
    verification = {column: provided[field] for field, column in _VERIFICATION_FIELDS.items() if field in provided}
    corrections = {column: provided[field] for field, column in _CORRECTION_FIELDS.items() if field in provided}
    try:
        lift = await BagLiftStateMachine(session).transition(
            bag_lift_id=bag_lift_id,
            target_status=BagLiftStatus(payload.status),
            approver_id=operator.id,
            memo=payload.memo,
            verification=verification,
            corrections=corrections,
        )
    except Exception as exc:
        raise http_error_for(exc) from exc
    return BagLiftEnvelope(message="Updated successfully.", data=_serialize(lift))
