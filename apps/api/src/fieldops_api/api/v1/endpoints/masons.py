"""Mason accounts, ledger history, stats and reconciliation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.api.dependencies.session import require_operator
from fieldops_api.api.errors import http_error_for
from fieldops_api.db.session import get_session
from fieldops_api.models.loyalty import BagLift, BagLiftStatus, PointsLedgerEntry
from fieldops_api.models.mason import KycStatus, Mason
from fieldops_api.models.user import User
from fieldops_api.services.loyalty import PointsLedgerService


router = APIRouter(tags=["masons"])


class MasonCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phoneNumber: str = Field(..., min_length=1, max_length=32)
    kycDocumentName: Optional[str] = None
    kycDocumentIdNum: Optional[str] = None
    kycStatus: KycStatus = KycStatus.PENDING
    dealerId: Optional[str] = None
    userId: Optional[UUID] = None
    referredById: Optional[UUID] = None
    deviceId: Optional[str] = None


class MasonResponse(BaseModel):
    id: UUID
    name: str
    phoneNumber: str
    kycDocumentName: Optional[str]
    kycDocumentIdNum: Optional[str]
    kycStatus: KycStatus
    pointsBalance: int
    bagsLifted: int
    dealerId: Optional[str]
    userId: Optional[UUID]
    referredById: Optional[UUID]
    createdAt: datetime


class LedgerEntryResponse(BaseModel):
    id: UUID
    masonId: UUID
    sourceType: str
    sourceId: Optional[UUID]
    points: int
    memo: Optional[str]
    createdAt: datetime


class MasonStatsResponse(BaseModel):
    success: bool
    overall: int
    site: int


def serialize_mason(mason: Mason) -> MasonResponse:
    return MasonResponse(
        id=mason.id,
        name=mason.name,
        phoneNumber=mason.phone_number,
        kycDocumentName=mason.kyc_document_name,
        kycDocumentIdNum=mason.kyc_document_id_num,
        kycStatus=mason.kyc_status,
        pointsBalance=int(mason.points_balance or 0),
        bagsLifted=int(mason.bags_lifted or 0),
        dealerId=mason.dealer_id,
        userId=mason.user_id,
        referredById=mason.referred_by_id,
        createdAt=mason.created_at,
    )


def _serialize_entry(entry: PointsLedgerEntry) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        id=entry.id,
        masonId=entry.mason_id,
        sourceType=entry.source_type.value,
        sourceId=entry.source_id,
        points=int(entry.points),
        memo=entry.memo,
        createdAt=entry.created_at,
    )


async def _get_mason(session: AsyncSession, mason_id: UUID) -> Mason:
    mason = await session.get(Mason, mason_id, populate_existing=True)
    if mason is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mason not found")
    return mason


@router.post("/masons", response_model=MasonResponse, status_code=status.HTTP_201_CREATED)
async def create_mason(
    payload: MasonCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> MasonResponse:
    """Open an account with zero balance; counters only move through the ledger."""

    if payload.referredById is not None:
        await _get_mason(session, payload.referredById)

    mason = Mason(
        name=payload.name.strip(),
        phone_number=payload.phoneNumber.strip(),
        kyc_document_name=payload.kycDocumentName,
        kyc_document_id_num=payload.kycDocumentIdNum,
        kyc_status=payload.kycStatus,
        dealer_id=payload.dealerId,
        user_id=payload.userId,
        referred_by_id=payload.referredById,
        device_id=payload.deviceId,
        points_balance=0,
        bags_lifted=0,
    )
    session.add(mason)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Mason with this device is already registered",
        ) from exc
    await session.refresh(mason)
    logger.info("Mason created", mason_id=str(mason.id), referred_by_id=str(mason.referred_by_id or ""))
    return serialize_mason(mason)


@router.get("/masons/{mason_id}", response_model=MasonResponse)
async def get_mason(mason_id: UUID, session: AsyncSession = Depends(get_session)) -> MasonResponse:
    return serialize_mason(await _get_mason(session, mason_id))


@router.get("/masons/{mason_id}/ledger", response_model=list[LedgerEntryResponse])
async def list_ledger_entries(
    mason_id: UUID,
    limit: int = Query(100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> list[LedgerEntryResponse]:
    await _get_mason(session, mason_id)
    entries = await PointsLedgerService(session).list_entries(mason_id, limit=limit)
    return [_serialize_entry(entry) for entry in entries]


@router.post("/masons/{mason_id}/reconcile")
async def reconcile_mason(
    mason_id: UUID,
    session: AsyncSession = Depends(get_session),
    operator: User = Depends(require_operator),
) -> dict[str, Any]:
    """Re-derive the cached counters from the ledger and approved lifts."""

    try:
        outcome = await PointsLedgerService(session).reconcile(mason_id)
    except Exception as exc:
        raise http_error_for(exc) from exc
    logger.info("Mason reconciled on demand", mason_id=str(mason_id), operator_id=str(operator.id))
    return {"success": True, "data": outcome.as_dict()}


@router.get("/mason-stats", response_model=MasonStatsResponse)
async def mason_stats(
    masonId: UUID = Query(...),
    siteId: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
) -> MasonStatsResponse:
    """Cached lifetime bags for the account plus approved bags at a site."""

    mason = await _get_mason(session, masonId)
    site_total = 0
    if siteId:
        site_total = int(
            await session.scalar(
                select(func.coalesce(func.sum(BagLift.bag_count), 0)).where(
                    BagLift.site_id == siteId,
                    BagLift.status == BagLiftStatus.APPROVED,
                )
            )
            or 0
        )
    return MasonStatsResponse(success=True, overall=int(mason.bags_lifted or 0), site=site_total)
