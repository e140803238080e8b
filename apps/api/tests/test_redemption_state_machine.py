import pytest
from sqlalchemy import select

from fieldops_api.models.loyalty import (
    LedgerSourceType,
    PointsLedgerEntry,
    RedemptionStatus,
    Reward,
    RewardRedemption,
)
from fieldops_api.models.mason import Mason
from fieldops_api.services.loyalty import (
    ApprovalError,
    InsufficientPointsError,
    InsufficientStockError,
    InvalidTransitionError,
    RedemptionStateMachine,
)


@pytest.mark.asyncio
async def test_reject_after_approval_restocks_and_refunds(
    session_factory, make_mason, make_reward
) -> None:
    mason = await make_mason(points_balance=1000)
    reward = await make_reward(point_cost=100, stock=5)

    async with session_factory() as session:
        machine = RedemptionStateMachine(session)
        redemption = await machine.place(mason_id=mason.id, reward_id=reward.id, quantity=2)
        assert redemption.status == RedemptionStatus.PLACED
        assert redemption.points_debited == 200

    async with session_factory() as session:
        assert (await session.get(Mason, mason.id)).points_balance == 800
        assert (await session.get(Reward, reward.id)).stock == 5

    async with session_factory() as session:
        await RedemptionStateMachine(session).transition(
            redemption_id=redemption.id,
            target_status=RedemptionStatus.APPROVED,
        )

    async with session_factory() as session:
        assert (await session.get(Reward, reward.id)).stock == 3

    async with session_factory() as session:
        rejected = await RedemptionStateMachine(session).transition(
            redemption_id=redemption.id,
            target_status=RedemptionStatus.REJECTED,
            fulfillment_notes="Address unreachable",
        )
        assert rejected.fulfillment_notes == "Address unreachable"

    async with session_factory() as session:
        assert (await session.get(Reward, reward.id)).stock == 5
        assert (await session.get(Mason, mason.id)).points_balance == 1000
        entries = (
            await session.execute(select(PointsLedgerEntry).where(PointsLedgerEntry.mason_id == mason.id))
        ).scalars().all()
        assert sorted((entry.source_type, entry.points) for entry in entries) == sorted(
            [
                (LedgerSourceType.REDEMPTION, -200),
                (LedgerSourceType.ADJUSTMENT, 200),
            ]
        )
        assert {entry.source_id for entry in entries} == {redemption.id}


@pytest.mark.asyncio
async def test_approval_fails_without_stock(session_factory, make_mason, make_reward) -> None:
    mason = await make_mason(points_balance=1000)
    reward = await make_reward(point_cost=100, stock=1)

    async with session_factory() as session:
        machine = RedemptionStateMachine(session)
        redemption = await machine.place(mason_id=mason.id, reward_id=reward.id, quantity=2)
        redemption_id = redemption.id

        with pytest.raises(InsufficientStockError) as excinfo:
            await machine.transition(redemption_id=redemption_id, target_status=RedemptionStatus.APPROVED)
        assert excinfo.value.available == 1
        assert excinfo.value.required == 2
        assert str(excinfo.value) == "Insufficient stock to approve. Available: 1, Required: 2"

    async with session_factory() as session:
        stored = await session.get(RewardRedemption, redemption_id)
        assert stored.status == RedemptionStatus.PLACED
        assert (await session.get(Reward, reward.id)).stock == 1


@pytest.mark.asyncio
async def test_placement_requires_covering_balance(session_factory, make_mason, make_reward) -> None:
    mason = await make_mason(points_balance=50)
    reward = await make_reward(point_cost=100)

    async with session_factory() as session:
        with pytest.raises(InsufficientPointsError):
            await RedemptionStateMachine(session).place(mason_id=mason.id, reward_id=reward.id)

    async with session_factory() as session:
        assert (await session.execute(select(RewardRedemption))).scalars().all() == []
        assert (await session.get(Mason, mason.id)).points_balance == 50


@pytest.mark.asyncio
async def test_inactive_rewards_cannot_be_redeemed(session_factory, make_mason, make_reward) -> None:
    mason = await make_mason(points_balance=1000)
    reward = await make_reward(is_active=False)

    async with session_factory() as session:
        with pytest.raises(ApprovalError):
            await RedemptionStateMachine(session).place(mason_id=mason.id, reward_id=reward.id)


@pytest.mark.asyncio
async def test_fulfillment_path_and_terminal_states(session_factory, make_mason, make_reward) -> None:
    mason = await make_mason(points_balance=1000)
    reward = await make_reward(point_cost=100, stock=5)

    async with session_factory() as session:
        machine = RedemptionStateMachine(session)
        redemption = await machine.place(mason_id=mason.id, reward_id=reward.id)
        redemption_id = redemption.id

        with pytest.raises(InvalidTransitionError):
            await machine.transition(redemption_id=redemption_id, target_status=RedemptionStatus.SHIPPED)

        await machine.transition(redemption_id=redemption_id, target_status=RedemptionStatus.APPROVED)
        await machine.transition(redemption_id=redemption_id, target_status=RedemptionStatus.SHIPPED)

        with pytest.raises(InvalidTransitionError):
            await machine.transition(redemption_id=redemption_id, target_status=RedemptionStatus.REJECTED)

        delivered = await machine.transition(
            redemption_id=redemption_id,
            target_status=RedemptionStatus.DELIVERED,
        )
        assert delivered.status == RedemptionStatus.DELIVERED

        with pytest.raises(InvalidTransitionError) as excinfo:
            await machine.transition(redemption_id=redemption_id, target_status=RedemptionStatus.REJECTED)
        assert "delivered is terminal" in str(excinfo.value)

    async with session_factory() as session:
        assert (await session.get(Reward, reward.id)).stock == 4
        assert (await session.get(Mason, mason.id)).points_balance == 900
