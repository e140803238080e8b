import json
from uuid import uuid4

import pytest

from fieldops_api.services.journeys import JourneyOpLog, JourneySyncChannel


def test_connected_greeting() -> None:
    assert JourneySyncChannel.connected() == {"type": "CONNECTED", "message": "Server Response: OK"}


@pytest.mark.asyncio
async def test_ping_gets_pong(session_factory) -> None:
    async with session_factory() as session:
        channel = JourneySyncChannel(session)
        reply = await channel.handle_text(json.dumps({"type": "PING"}))

    assert reply == {"type": "PONG"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "frame",
    [
        None,
        "not json",
        json.dumps(["SYNC_OPS"]),
        json.dumps({"type": "HELLO"}),
        json.dumps({"type": "SYNC_OPS", "payload": {"opId": "x"}}),
    ],
)
async def test_unknown_frames_get_error_reply(session_factory, frame) -> None:
    async with session_factory() as session:
        reply = await JourneySyncChannel(session).handle_text(frame)

    assert reply == {"type": "ERROR", "message": "Invalid message format"}


@pytest.mark.asyncio
async def test_sync_ops_frame_is_acknowledged_per_op(session_factory, make_user) -> None:
    user = await make_user()
    op_id = str(uuid4())
    frame = json.dumps(
        {
            "type": "SYNC_OPS",
            "payload": [
                {"opId": op_id, "journeyId": "WS-1", "type": "START", "payload": {"siteName": "Yard"}},
                {"opId": str(uuid4()), "journeyId": "WS-404", "type": "STOP", "payload": {}},
            ],
        }
    )

    async with session_factory() as session:
        channel = JourneySyncChannel(session, principal_id=user.id)
        reply = await channel.handle_text(frame)
        replay = await channel.handle_text(frame)

    assert reply["type"] == "ACK"
    first, second = reply["payload"]
    assert first["opId"] == op_id
    assert first["status"] == "OK"
    assert isinstance(first["serverSeq"], int)
    assert second["status"] == "FAILED"
    assert second["serverSeq"] is None
    assert set(first) == {"opId", "status", "serverSeq"}

    assert replay["payload"][0] == {"opId": op_id, "status": "ALREADY_PROCESSED", "serverSeq": first["serverSeq"]}


@pytest.mark.asyncio
async def test_oversized_frame_gets_error_reply(session_factory) -> None:
    frame = json.dumps(
        {
            "type": "SYNC_OPS",
            "payload": [{"opId": str(uuid4()), "journeyId": "WS-2", "type": "MOVE"} for _ in range(3)],
        }
    )

    async with session_factory() as session:
        channel = JourneySyncChannel(
            session,
            op_log_factory=lambda db: JourneyOpLog(db, max_batch_size=2),
        )
        reply = await channel.handle_text(frame)

    assert reply["type"] == "ERROR"
    assert "exceeds the limit of 2" in reply["message"]
