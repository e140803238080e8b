from uuid import uuid4

import pytest
from sqlalchemy import select

from fieldops_api.models.loyalty import LedgerSourceType, PointsLedgerEntry
from fieldops_api.models.mason import KycStatus, Mason
from fieldops_api.services.loyalty import KycApprovalService, PointsPolicy, RecordNotFoundError


def _policy() -> PointsPolicy:
    return PointsPolicy(joining_bonus_points=250)


@pytest.mark.asyncio
async def test_submission_marks_account_pending(session_factory, make_mason) -> None:
    mason = await make_mason()

    async with session_factory() as session:
        submission = await KycApprovalService(session, policy=_policy()).submit(
            mason_id=mason.id,
            aadhaar_number="123412341234",
            documents={"aadhaarFront": "https://cdn.example/aadhaar.jpg"},
        )
        assert submission.status == KycStatus.PENDING

    async with session_factory() as session:
        refreshed = await session.get(Mason, mason.id)
        assert refreshed.kyc_status == KycStatus.PENDING


@pytest.mark.asyncio
async def test_joining_bonus_is_paid_once(session_factory, make_mason) -> None:
    mason = await make_mason()

    async with session_factory() as session:
        service = KycApprovalService(session, policy=_policy())
        first = await service.submit(mason_id=mason.id, pan_number="ABCDE1234F")
        await service.transition(submission_id=first.id, target_status=KycStatus.APPROVED)
        # re-approving the same submission and approving a fresh one must not pay again
        await service.transition(submission_id=first.id, target_status=KycStatus.APPROVED)
        second = await service.submit(mason_id=mason.id, voter_id_number="VOTER123")
        approved = await service.transition(submission_id=second.id, target_status=KycStatus.APPROVED)
        assert approved.status == KycStatus.APPROVED

    async with session_factory() as session:
        refreshed = await session.get(Mason, mason.id)
        assert refreshed.kyc_status == KycStatus.APPROVED
        assert refreshed.points_balance == 250

        entries = (
            await session.execute(select(PointsLedgerEntry).where(PointsLedgerEntry.mason_id == mason.id))
        ).scalars().all()
        assert [(entry.source_type, entry.source_id, entry.points) for entry in entries] == [
            (LedgerSourceType.JOINING_BONUS, first.id, 250)
        ]


@pytest.mark.asyncio
async def test_rejection_mirrors_status_and_syncs_profile(session_factory, make_mason) -> None:
    mason = await make_mason()

    async with session_factory() as session:
        service = KycApprovalService(session, policy=_policy())
        submission = await service.submit(mason_id=mason.id)
        rejected = await service.transition(
            submission_id=submission.id,
            target_status=KycStatus.REJECTED,
            remark="Blurry document",
            mason_updates={"name": "Ravi K.", "dealer_id": "DLR-1", "points_balance": 10_000},
        )
        assert rejected.remark == "Blurry document"

    async with session_factory() as session:
        refreshed = await session.get(Mason, mason.id)
        assert refreshed.kyc_status == KycStatus.REJECTED
        assert refreshed.name == "Ravi K."
        assert refreshed.dealer_id == "DLR-1"
        assert refreshed.points_balance == 0


@pytest.mark.asyncio
async def test_unknown_submission_raises(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(RecordNotFoundError):
            await KycApprovalService(session, policy=_policy()).transition(
                submission_id=uuid4(),
                target_status=KycStatus.APPROVED,
            )


async def _joining_entries(session, mason_id) -> list[PointsLedgerEntry]:
    stmt = select(PointsLedgerEntry).where(
        PointsLedgerEntry.mason_id == mason_id,
        PointsLedgerEntry.source_type == LedgerSourceType.JOINING_BONUS,
    )
    return list((await session.execute(stmt)).scalars().all())


@pytest.mark.asyncio
async def test_reapproval_after_rejection_skips_bonus(session_factory, make_mason) -> None:
    mason = await make_mason()

    async with session_factory() as session:
        service = KycApprovalService(session, policy=_policy())
        submission = await service.submit(mason_id=mason.id, aadhaar_number="123412341234")
        submission_id = submission.id
        await service.transition(submission_id=submission_id, target_status=KycStatus.APPROVED)
        await service.transition(submission_id=submission_id, target_status=KycStatus.REJECTED)
        reapproved = await service.transition(submission_id=submission_id, target_status=KycStatus.APPROVED)
        assert reapproved.status == KycStatus.APPROVED

    async with session_factory() as session:
        refreshed = await session.get(Mason, mason.id)
        assert refreshed.kyc_status == KycStatus.APPROVED
        assert refreshed.points_balance == 250
        assert len(await _joining_entries(session, mason.id)) == 1


@pytest.mark.asyncio
async def test_fresh_submission_after_rejection_skips_bonus(session_factory, make_mason) -> None:
    mason = await make_mason()

    async with session_factory() as session:
        service = KycApprovalService(session, policy=_policy())
        first = await service.submit(mason_id=mason.id, pan_number="ABCDE1234F")
        first_id = first.id
        await service.transition(submission_id=first_id, target_status=KycStatus.APPROVED)
        await service.transition(submission_id=first_id, target_status=KycStatus.REJECTED)

        second = await service.submit(mason_id=mason.id, voter_id_number="VOTER123")
        approved = await service.transition(submission_id=second.id, target_status=KycStatus.APPROVED)
        assert approved.status == KycStatus.APPROVED

    async with session_factory() as session:
        refreshed = await session.get(Mason, mason.id)
        assert refreshed.kyc_status == KycStatus.APPROVED
        assert refreshed.points_balance == 250
        entries = await _joining_entries(session, mason.id)
        assert [entry.source_id for entry in entries] == [first_id]
