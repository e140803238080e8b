"""Journey op sync (HTTP and socket), op pull and projection endpoints."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.api.dependencies.session import optional_session_user, parse_session_user
from fieldops_api.db.session import get_session
from fieldops_api.models.journey import Journey, JourneyBreadcrumb, JourneyOp
from fieldops_api.models.user import User
from fieldops_api.schemas.journey import (
    JourneyOpResponse,
    JourneyOpSyncRequest,
    JourneyResponse,
)
from fieldops_api.services.journeys import (
    JourneyNotFoundError,
    JourneyOpLog,
    JourneyProjector,
    JourneySyncChannel,
    ProjectionError,
    SyncBatchTooLargeError,
)


router = APIRouter(tags=["journeys"])


def _serialize_op(op: JourneyOp) -> JourneyOpResponse:
    return JourneyOpResponse(
        serverSeq=int(op.server_seq),
        opId=op.op_id,
        journeyId=op.journey_id,
        userId=op.user_id,
        type=op.op_type,
        payload=op.payload or {},
        localSeq=op.local_seq,
        createdAt=op.created_at,
    )


async def _serialize_journey(session: AsyncSession, journey: Journey) -> JourneyResponse:
    breadcrumbs = await session.scalar(
        select(func.count(JourneyBreadcrumb.id)).where(JourneyBreadcrumb.journey_id == journey.id)
    )
    return JourneyResponse(
        id=journey.id,
        userId=journey.user_id,
        status=journey.status.value,
        pjpId=journey.pjp_id,
        siteId=journey.site_id,
        dealerId=journey.dealer_id,
        taskId=journey.task_id,
        verifiedDealerId=journey.verified_dealer_id,
        siteName=journey.site_name,
        destLat=journey.dest_lat,
        destLng=journey.dest_lng,
        startTime=journey.start_time,
        endTime=journey.end_time,
        totalDistance=journey.total_distance,
        breadcrumbCount=int(breadcrumbs or 0),
    )


@router.post("/journey-ops/sync")
async def sync_journey_ops(
    payload: JourneyOpSyncRequest,
    session: AsyncSession = Depends(get_session),
    principal: Optional[User] = Depends(optional_session_user),
) -> dict[str, Any]:
    """Append a batch of client ops; each op is acknowledged on its own."""

    try:
        acks = await JourneyOpLog(session).sync(
            payload.ops,
            principal_id=principal.id if principal else None,
            channel="http",
        )
    except SyncBatchTooLargeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return {
        "success": True,
        "data": {
            "acks": [ack.as_dict() for ack in acks],
        },
    }


@router.get("/journey-ops", response_model=list[JourneyOpResponse])
async def pull_journey_ops(
    afterSeq: int = Query(0, ge=0),
    journeyId: Optional[str] = Query(None),
    limit: int = Query(500, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
) -> list[JourneyOpResponse]:
    ops = await JourneyOpLog(session).pull(after_seq=afterSeq, journey_id=journeyId, limit=limit)
    return [_serialize_op(op) for op in ops]


@router.get("/journeys/{journey_id}", response_model=JourneyResponse)
async def get_journey(journey_id: str, session: AsyncSession = Depends(get_session)) -> JourneyResponse:
    journey = await session.get(Journey, journey_id, populate_existing=True)
    if journey is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Journey not found")
    return await _serialize_journey(session, journey)


@router.post("/journeys/{journey_id}/rebuild", response_model=JourneyResponse)
async def rebuild_journey(journey_id: str, session: AsyncSession = Depends(get_session)) -> JourneyResponse:
    """Discard the projection and refold it from the op log."""

    try:
        journey = await JourneyProjector(session).rebuild(journey_id)
    except JourneyNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ProjectionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return await _serialize_journey(session, journey)


@router.websocket("/journey-ops/ws")
async def journey_sync_socket(websocket: WebSocket, session: AsyncSession = Depends(get_session)) -> None:
    await websocket.accept()
    try:
        principal_id = parse_session_user(websocket.headers.get("x-session-user"))
    except HTTPException:
        await websocket.send_json({"type": "ERROR", "message": "Invalid session user identifier"})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    channel = JourneySyncChannel(session, principal_id=principal_id)
    await websocket.send_json(channel.connected())
    logger.info("Journey sync client connected", principal_id=str(principal_id) if principal_id else None)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))
            await websocket.send_json(await channel.handle_text(message.get("text")))
    except WebSocketDisconnect:
        logger.info("Journey sync client disconnected")
