"""KYC submission review with the one-time joining bonus."""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.models.loyalty import LedgerSourceType, PointsLedgerEntry
from fieldops_api.models.mason import KycStatus, KycSubmission, Mason
from fieldops_api.observability.loyalty import get_loyalty_store
from fieldops_api.services.loyalty.errors import RecordNotFoundError
from fieldops_api.services.loyalty.ledger import PointsLedgerService
from fieldops_api.services.loyalty.policy import PointsPolicy, default_policy

MASON_PROFILE_FIELDS = frozenset({"dealer_id", "name"})


class KycApprovalService:
    """Review KYC submissions and mirror the outcome onto the account.

    Any status may follow any other. The joining bonus is paid only when the
    account's own ``kyc_status`` moves into approved and the ledger holds no
    earlier joining bonus for the account. The conditional status update keeps
    concurrent approvals from both paying it; the ledger check covers an
    account that was approved, rejected and then approved again.
    """

    def __init__(self, session: AsyncSession, *, policy: PointsPolicy | None = None) -> None:
        self._session = session
        self._policy = policy or default_policy()
        self._ledger = PointsLedgerService(session)

    async def submit(
        self,
        *,
        mason_id: UUID,
        aadhaar_number: str | None = None,
        pan_number: str | None = None,
        voter_id_number: str | None = None,
        documents: Mapping[str, Any] | None = None,
    ) -> KycSubmission:
        try:
            mason = await self._session.get(Mason, mason_id)
            if mason is None:
                raise RecordNotFoundError(f"Mason {mason_id} not found")

            submission = KycSubmission(
                mason_id=mason_id,
                aadhaar_number=aadhaar_number,
                pan_number=pan_number,
                voter_id_number=voter_id_number,
                documents=dict(documents) if documents else None,
                status=KycStatus.PENDING,
            )
            self._session.add(submission)
            await self._session.execute(
                update(Mason)
                .where(Mason.id == mason_id, Mason.kyc_status != KycStatus.APPROVED)
                .values(kyc_status=KycStatus.PENDING)
            )
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        await self._session.refresh(submission)
        logger.info("KYC submission received", submission_id=str(submission.id), mason_id=str(mason_id))
        return submission

    async def transition(
        self,
        *,
        submission_id: UUID,
        target_status: KycStatus,
        remark: str | None = None,
        mason_updates: Mapping[str, Any] | None = None,
        documents: Mapping[str, Any] | None = None,
    ) -> KycSubmission:
        """Set the submission status, mirror it and pay the joining bonus once."""

        bonus_paid = 0
        try:
            submission = await self._get_submission(submission_id)
            current_status = submission.status

            submission.status = target_status
            if remark is not None:
                submission.remark = remark
            if documents is not None:
                submission.documents = dict(documents)

            profile = {
                key: value for key, value in (mason_updates or {}).items() if key in MASON_PROFILE_FIELDS
            }
            if profile:
                await self._session.execute(
                    update(Mason).where(Mason.id == submission.mason_id).values(**profile)
                )

            if target_status == KycStatus.APPROVED:
                bonus_paid = await self._approve_account(submission)
            else:
                await self._session.execute(
                    update(Mason)
                    .where(Mason.id == submission.mason_id)
                    .values(kyc_status=target_status)
                )

            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        await self._session.refresh(submission)
        get_loyalty_store().record_transition("kyc", current_status.value, target_status.value)
        logger.info(
            "KYC submission status transitioned",
            submission_id=str(submission.id),
            mason_id=str(submission.mason_id),
            from_status=current_status.value,
            to_status=target_status.value,
            joining_bonus=bonus_paid,
        )
        return submission

    async def get(self, submission_id: UUID) -> KycSubmission:
        return await self._get_submission(submission_id)

    async def _approve_account(self, submission: KycSubmission) -> int:
        result = await self._session.execute(
            update(Mason)
            .where(Mason.id == submission.mason_id, Mason.kyc_status != KycStatus.APPROVED)
            .values(kyc_status=KycStatus.APPROVED)
        )
        if result.rowcount == 0:
            exists = await self._session.scalar(select(Mason.id).where(Mason.id == submission.mason_id))
            if exists is None:
                raise RecordNotFoundError(f"Mason {submission.mason_id} not found")
            logger.info(
                "Account already KYC approved; joining bonus skipped",
                mason_id=str(submission.mason_id),
                submission_id=str(submission.id),
            )
            return 0

        already_paid = await self._session.scalar(
            select(PointsLedgerEntry.id)
            .where(
                PointsLedgerEntry.mason_id == submission.mason_id,
                PointsLedgerEntry.source_type == LedgerSourceType.JOINING_BONUS,
            )
            .limit(1)
        )
        if already_paid is not None:
            logger.info(
                "Joining bonus already on the ledger; skipped",
                mason_id=str(submission.mason_id),
                submission_id=str(submission.id),
            )
            return 0

        amount = self._policy.joining_bonus_amount()
        if amount > 0:
            await self._ledger.record_entry(
                submission.mason_id,
                source_type=LedgerSourceType.JOINING_BONUS,
                source_id=submission.id,
                points=amount,
                memo="Joining bonus for approved KYC.",
            )
        return amount

    async def _get_submission(self, submission_id: UUID) -> KycSubmission:
        stmt = (
            select(KycSubmission)
            .where(KycSubmission.id == submission_id)
            .execution_options(populate_existing=True)
        )
        submission = await self._session.scalar(stmt)
        if submission is None:
            raise RecordNotFoundError(f"KYC submission {submission_id} not found")
        return submission
