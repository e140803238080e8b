from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from starlette.websockets import WebSocketDisconnect

from fieldops_api.app import create_app
from fieldops_api.core.settings import settings
from fieldops_api.db.session import get_session


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _ops(journey_id: str) -> list[dict]:
    return [
        {
            "opId": str(uuid4()),
            "journeyId": journey_id,
            "type": "START",
            "payload": {"siteName": "Ward 12", "destLat": 12.9716, "destLng": 77.5946},
            "localSeq": 1,
            "createdAt": "2026-10-18T08:00:00Z",
        },
        {
            "opId": str(uuid4()),
            "journeyId": journey_id,
            "type": "MOVE",
            "payload": {"latitude": 12.97, "longitude": 77.59},
            "localSeq": 2,
            "createdAt": "2026-10-18T08:05:00Z",
        },
        {
            "opId": str(uuid4()),
            "journeyId": journey_id,
            "type": "STOP",
            "payload": {"totalDistance": 1500},
            "localSeq": 3,
            "createdAt": "2026-10-18T08:30:00Z",
        },
    ]


@pytest.mark.asyncio
async def test_http_sync_is_idempotent(app_with_db, make_user) -> None:
    app, _ = app_with_db
    user = await make_user()
    headers = {"X-Session-User": str(user.id)}
    ops = _ops("HTTP-1")

    async with _client(app) as client:
        first = await client.post("/api/v1/journey-ops/sync", json={"lastServerSeq": 0, "ops": ops}, headers=headers)
        assert first.status_code == 200
        acks = first.json()["data"]["acks"]
        assert [ack["status"] for ack in acks] == ["OK", "OK", "OK"]
        assert [ack["opId"] for ack in acks] == [op["opId"] for op in ops]

        replay = await client.post("/api/v1/journey-ops/sync", json={"ops": ops}, headers=headers)
        replay_acks = replay.json()["data"]["acks"]
        assert [ack["status"] for ack in replay_acks] == ["ALREADY_PROCESSED"] * 3
        assert [ack["serverSeq"] for ack in replay_acks] == [ack["serverSeq"] for ack in acks]

        pulled = await client.get("/api/v1/journey-ops", params={"afterSeq": acks[0]["serverSeq"]})
        assert [op["serverSeq"] for op in pulled.json()] == [ack["serverSeq"] for ack in acks[1:]]
        assert pulled.json()[0]["type"] == "MOVE"

        journey = await client.get("/api/v1/journeys/HTTP-1")
        assert journey.status_code == 200
        payload = journey.json()
        assert payload["status"] == "COMPLETED"
        assert payload["userId"] == str(user.id)
        assert Decimal(str(payload["totalDistance"])) == Decimal("1.5")
        assert payload["siteName"] == "Ward 12"

        rebuilt = await client.post("/api/v1/journeys/HTTP-1/rebuild")
        assert rebuilt.status_code == 200
        assert rebuilt.json()["status"] == "COMPLETED"

        missing = await client.post("/api/v1/journeys/NOPE/rebuild")
        assert missing.status_code == 404
        assert (await client.get("/api/v1/journeys/NOPE")).status_code == 404


@pytest.mark.asyncio
async def test_http_sync_rejects_oversized_batches(app_with_db, make_user, monkeypatch) -> None:
    app, _ = app_with_db
    user = await make_user()
    monkeypatch.setattr(settings, "journey_sync_max_batch_size", 2)

    async with _client(app) as client:
        response = await client.post(
            "/api/v1/journey-ops/sync",
            json={"ops": _ops("HTTP-2")},
            headers={"X-Session-User": str(user.id)},
        )
        malformed = await client.post("/api/v1/journey-ops/sync", json={"ops": "nope"})

    assert response.status_code == 400
    assert malformed.status_code == 422


def _socket_app():
    app = create_app()

    async def no_database():
        yield None

    app.dependency_overrides[get_session] = no_database
    return app


def test_websocket_handshake_and_ping() -> None:
    app = _socket_app()

    with TestClient(app) as client:
        with client.websocket_connect("/api/v1/journey-ops/ws") as websocket:
            assert websocket.receive_json() == {"type": "CONNECTED", "message": "Server Response: OK"}

            websocket.send_text('{"type": "PING"}')
            assert websocket.receive_json() == {"type": "PONG"}

            websocket.send_text("hello")
            assert websocket.receive_json() == {"type": "ERROR", "message": "Invalid message format"}

            websocket.send_bytes(b"\x00\x01")
            assert websocket.receive_json() == {"type": "ERROR", "message": "Invalid message format"}

            websocket.send_text('{"type": "PING"}')
            assert websocket.receive_json() == {"type": "PONG"}


def test_websocket_rejects_malformed_principal() -> None:
    app = _socket_app()

    with TestClient(app) as client:
        with client.websocket_connect(
            "/api/v1/journey-ops/ws",
            headers={"x-session-user": "not-a-uuid"},
        ) as websocket:
            assert websocket.receive_json() == {
                "type": "ERROR",
                "message": "Invalid session user identifier",
            }
            with pytest.raises(WebSocketDisconnect) as excinfo:
                websocket.receive_json()
            assert excinfo.value.code == 1008
