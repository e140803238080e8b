"""KYC submission intake and review endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.api.dependencies.session import require_operator
from fieldops_api.api.errors import http_error_for
from fieldops_api.db.session import get_session
from fieldops_api.models.mason import KycStatus, KycSubmission
from fieldops_api.models.user import User
from fieldops_api.services.loyalty import KycApprovalService


router = APIRouter(prefix="/kyc-submissions", tags=["kyc"])


class KycSubmissionCreateRequest(BaseModel):
    masonId: UUID
    aadhaarNumber: Optional[str] = Field(None, max_length=20)
    panNumber: Optional[str] = Field(None, max_length=20)
    voterIdNumber: Optional[str] = Field(None, max_length=20)
    documents: Optional[dict[str, Any]] = None


class MasonProfileUpdates(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dealerId: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)


class KycTransitionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["approved", "rejected", "pending"]
    remark: Optional[str] = Field(None, max_length=500)
    masonUpdates: Optional[MasonProfileUpdates] = None
    documents: Optional[dict[str, Any]] = None


class KycSubmissionResponse(BaseModel):
    id: UUID
    masonId: UUID
    aadhaarNumber: Optional[str]
    panNumber: Optional[str]
    voterIdNumber: Optional[str]
    documents: Optional[dict[str, Any]]
    status: KycStatus
    remark: Optional[str]
    createdAt: datetime
    updatedAt: datetime


class KycEnvelope(BaseModel):
    success: bool = True
    message: str
    data: KycSubmissionResponse


def _serialize(submission: KycSubmission) -> KycSubmissionResponse:
    return KycSubmissionResponse(
        id=submission.id,
        masonId=submission.mason_id,
        aadhaarNumber=submission.aadhaar_number,
        panNumber=submission.pan_number,
        voterIdNumber=submission.voter_id_number,
        documents=submission.documents,
        status=submission.status,
        remark=submission.remark,
        createdAt=submission.created_at,
        updatedAt=submission.updated_at,
    )


@router.post("", response_model=KycEnvelope, status_code=status.HTTP_201_CREATED)
async def submit_kyc(
    payload: KycSubmissionCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> KycEnvelope:
    try:
        submission = await KycApprovalService(session).submit(
            mason_id=payload.masonId,
            aadhaar_number=payload.aadhaarNumber,
            pan_number=payload.panNumber,
            voter_id_number=payload.voterIdNumber,
            documents=payload.documents,
        )
    except Exception as exc:
        raise http_error_for(exc) from exc
    return KycEnvelope(message="KYC submitted for review.", data=_serialize(submission))


@router.get("/{submission_id}", response_model=KycEnvelope)
async def get_kyc_submission(
    submission_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> KycEnvelope:
    try:
        submission = await KycApprovalService(session).get(submission_id)
    except Exception as exc:
        raise http_error_for(exc) from exc
    return KycEnvelope(message="KYC submission fetched.", data=_serialize(submission))


@router.patch("/{submission_id}", response_model=KycEnvelope)
async def review_kyc_submission(
    submission_id: UUID,
    payload: KycTransitionRequest,
    session: AsyncSession = Depends(get_session),
    operator: User = Depends(require_operator),
) -> KycEnvelope:
    mason_updates: dict[str, Any] = {}
    if payload.masonUpdates is not None:
        provided = payload.masonUpdates.model_dump(exclude_unset=True)
        if "dealerId" in provided:
            mason_updates["dealer_id"] = provided["dealerId"]
        if provided.get("name") is not None:
            mason_updates["name"] = provided["name"]

    try:
        submission = await KycApprovalService(session).transition(
            submission_id=submission_id,
            target_status=KycStatus(payload.status),
            remark=payload.remark,
            mason_updates=mason_updates,
            documents=payload.documents,
        )
    except Exception as exc:
        raise http_error_for(exc) from exc

    logger.info("KYC reviewed", submission_id=str(submission_id), operator_id=str(operator.id))
    return KycEnvelope(
        message=f"KYC Updated to '{submission.status.value}'. Mason Profile synced.",
        data=_serialize(submission),
    )
