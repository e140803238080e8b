from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from fieldops_api.models.journey import Journey, JourneyBreadcrumb, JourneyOp, JourneyStatus
from fieldops_api.observability.loyalty import get_loyalty_store
from fieldops_api.services.journeys import (
    JourneyNotFoundError,
    JourneyOpAckStatus,
    JourneyOpLog,
    JourneyProjector,
    SyncBatchTooLargeError,
    meters_to_km,
)


def _op(op_type: str, journey_id: str, payload: dict | None = None, **extra) -> dict:
    return {
        "opId": str(uuid4()),
        "journeyId": journey_id,
        "type": op_type,
        "payload": payload or {},
        "createdAt": "2026-10-18T09:00:00Z",
        **extra,
    }


def test_meters_to_km_rounds_to_three_places() -> None:
    assert meters_to_km(12345.6) == Decimal("12.346")
    assert meters_to_km("1500") == Decimal("1.500")
    assert meters_to_km(None) == Decimal("0.000")


@pytest.mark.asyncio
async def test_duplicate_op_is_acknowledged_with_original_seq(session_factory, make_user) -> None:
    user = await make_user()
    start = _op("START", "J-1", {"siteName": "Plot 42"})

    async with session_factory() as session:
        log = JourneyOpLog(session)
        [first] = await log.sync([start], principal_id=user.id)
        [replay] = await log.sync([start], principal_id=user.id)

    assert first.status == JourneyOpAckStatus.OK
    assert replay.status == JourneyOpAckStatus.ALREADY_PROCESSED
    assert replay.server_seq == first.server_seq
    assert replay.op_id == start["opId"]

    async with session_factory() as session:
        journey = await session.get(Journey, "J-1")
        assert journey.site_name == "Plot 42"
        assert journey.user_id == user.id


@pytest.mark.asyncio
async def test_replayed_op_id_with_new_payload_keeps_first_write(session_factory, make_user) -> None:
    user = await make_user()
    start = _op("START", "J-12", {"siteName": "North Yard"})
    stop = _op("STOP", "J-12", {"totalDistance": 1000})

    async with session_factory() as session:
        log = JourneyOpLog(session)
        first_start, first_stop = await log.sync([start, stop], principal_id=user.id)
        replay_start, replay_stop = await log.sync(
            [
                {**start, "payload": {"siteName": "South Yard"}},
                {**stop, "payload": {"totalDistance": 9000}},
            ],
            principal_id=user.id,
        )

    assert replay_start.status == JourneyOpAckStatus.ALREADY_PROCESSED
    assert replay_start.server_seq == first_start.server_seq
    assert replay_stop.status == JourneyOpAckStatus.ALREADY_PROCESSED
    assert replay_stop.server_seq == first_stop.server_seq

    async with session_factory() as session:
        rows = (
            await session.execute(select(JourneyOp).where(JourneyOp.journey_id == "J-12"))
        ).scalars().all()
        assert len(rows) == 2
        assert {str(row.op_id) for row in rows} == {start["opId"], stop["opId"]}

        journey = await session.get(Journey, "J-12")
        assert journey.site_name == "North Yard"
        assert journey.total_distance == Decimal("1.000")


@pytest.mark.asyncio
async def test_batch_failures_do_not_block_later_ops(session_factory, make_user) -> None:
    user = await make_user()
    batch = [
        _op("START", "J-2"),
        _op("MOVE", "J-UNKNOWN", {"latitude": 12.9, "longitude": 77.5}),
        _op("STOP", "J-2", {"totalDistance": 12345.6}),
    ]

    async with session_factory() as session:
        acks = await JourneyOpLog(session).sync(batch, principal_id=user.id)

    assert [ack.status for ack in acks] == [
        JourneyOpAckStatus.OK,
        JourneyOpAckStatus.FAILED,
        JourneyOpAckStatus.OK,
    ]
    assert acks[1].server_seq is None
    assert acks[1].error == "Invalid journeyId: J-UNKNOWN"
    assert acks[2].server_seq > acks[0].server_seq

    async with session_factory() as session:
        journey = await session.get(Journey, "J-2")
        assert journey.status == JourneyStatus.COMPLETED
        assert journey.total_distance == Decimal("12.346")
        assert journey.site_name == "N/A Site"
        assert journey.end_time is not None

    snapshot = get_loyalty_store().snapshot()
    assert snapshot.sync_acks["OK"] == 2
    assert snapshot.sync_acks["FAILED"] == 1
    assert snapshot.sync_acks["channel:http"] == 3


@pytest.mark.asyncio
async def test_malformed_op_fails_only_itself(session_factory, make_user) -> None:
    user = await make_user()

    async with session_factory() as session:
        acks = await JourneyOpLog(session).sync(
            [{"journeyId": "J-3", "type": "START"}, _op("START", "J-3"), "garbage"],
            principal_id=user.id,
        )

    assert [ack.status for ack in acks] == [
        JourneyOpAckStatus.FAILED,
        JourneyOpAckStatus.OK,
        JourneyOpAckStatus.FAILED,
    ]
    assert acks[0].op_id is None


@pytest.mark.asyncio
async def test_start_owner_falls_back_to_op_user(session_factory, make_user) -> None:
    user = await make_user()

    async with session_factory() as session:
        log = JourneyOpLog(session)
        [owned] = await log.sync([_op("START", "J-4", userId=str(user.id))])
        [orphan] = await log.sync([_op("START", "J-5")])
        [unknown] = await log.sync([_op("START", "J-6", userId=str(uuid4()))])

    assert owned.status == JourneyOpAckStatus.OK
    assert orphan.status == JourneyOpAckStatus.FAILED
    assert unknown.status == JourneyOpAckStatus.FAILED


@pytest.mark.asyncio
async def test_second_start_for_journey_fails(session_factory, make_user) -> None:
    user = await make_user()

    async with session_factory() as session:
        acks = await JourneyOpLog(session).sync(
            [_op("START", "J-7"), _op("START", "J-7")],
            principal_id=user.id,
        )

    assert [ack.status for ack in acks] == [JourneyOpAckStatus.OK, JourneyOpAckStatus.FAILED]


@pytest.mark.asyncio
async def test_oversized_batch_is_refused(session_factory, make_user) -> None:
    user = await make_user()

    async with session_factory() as session:
        with pytest.raises(SyncBatchTooLargeError):
            await JourneyOpLog(session, max_batch_size=2).sync(
                [_op("START", "J-8"), _op("MOVE", "J-8"), _op("STOP", "J-8")],
                principal_id=user.id,
            )


@pytest.mark.asyncio
async def test_move_ops_project_breadcrumbs_when_enabled(session_factory, make_user) -> None:
    user = await make_user()
    move = _op("MOVE", "J-9", {"latitude": 12.97, "longitude": 77.59, "speed": 4.2, "isMocked": False})

    async with session_factory() as session:
        log = JourneyOpLog(session, projector=JourneyProjector(session, breadcrumbs_enabled=True))
        acks = await log.sync(
            [_op("START", "J-9"), move, _op("MOVE", "J-9", {"speed": 3})],
            principal_id=user.id,
        )

    assert [ack.status for ack in acks] == [
        JourneyOpAckStatus.OK,
        JourneyOpAckStatus.OK,
        JourneyOpAckStatus.FAILED,
    ]

    async with session_factory() as session:
        crumbs = (await session.execute(select(JourneyBreadcrumb))).scalars().all()
        assert len(crumbs) == 1
        assert crumbs[0].server_seq == acks[1].server_seq
        assert crumbs[0].latitude == pytest.approx(12.97)


@pytest.mark.asyncio
async def test_move_ops_are_logged_without_breadcrumbs_by_default(session_factory, make_user) -> None:
    user = await make_user()

    async with session_factory() as session:
        log = JourneyOpLog(session, projector=JourneyProjector(session, breadcrumbs_enabled=False))
        acks = await log.sync([_op("START", "J-10"), _op("MOVE", "J-10")], principal_id=user.id)
        pulled = await log.pull(after_seq=0, journey_id="J-10")

    assert [ack.status for ack in acks] == [JourneyOpAckStatus.OK, JourneyOpAckStatus.OK]
    assert [op.server_seq for op in pulled] == [ack.server_seq for ack in acks]

    async with session_factory() as session:
        assert (await session.execute(select(JourneyBreadcrumb))).scalars().all() == []


@pytest.mark.asyncio
async def test_rebuild_refolds_projection_from_log(session_factory, make_user) -> None:
    user = await make_user()

    async with session_factory() as session:
        await JourneyOpLog(session).sync(
            [
                _op("START", "J-11", {"siteName": "Depot", "pjpId": "PJP-1"}),
                _op("STOP", "J-11", {"totalDistance": 2500}),
            ],
            principal_id=user.id,
        )

    async with session_factory() as session:
        journey = await session.get(Journey, "J-11")
        journey.status = JourneyStatus.ACTIVE
        journey.total_distance = Decimal("0")
        journey.site_name = "Corrupted"
        await session.commit()

    async with session_factory() as session:
        rebuilt = await JourneyProjector(session).rebuild("J-11")
        assert rebuilt.status == JourneyStatus.COMPLETED
        assert rebuilt.total_distance == Decimal("2.500")
        assert rebuilt.site_name == "Depot"
        assert rebuilt.pjp_id == "PJP-1"

        with pytest.raises(JourneyNotFoundError):
            await JourneyProjector(session).rebuild("J-MISSING")


@pytest.mark.asyncio
async def test_stop_after_completion_fails(session_factory, make_user) -> None:
    user = await make_user()

    async with session_factory() as session:
        acks = await JourneyOpLog(session).sync(
            [
                _op("START", "J-13"),
                _op("STOP", "J-13", {"totalDistance": 800}),
                _op("STOP", "J-13", {"totalDistance": 5000}),
            ],
            principal_id=user.id,
        )

    assert [ack.status for ack in acks] == [
        JourneyOpAckStatus.OK,
        JourneyOpAckStatus.OK,
        JourneyOpAckStatus.FAILED,
    ]
    assert acks[2].error == "Journey J-13 already completed"

    async with session_factory() as session:
        journey = await session.get(Journey, "J-13")
        assert journey.total_distance == Decimal("0.800")
