"""Message protocol for the journey sync socket."""

from __future__ import annotations

import json
from typing import Any, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.services.journeys.op_log import JourneyOpLog, SyncBatchTooLargeError

CONNECTED_MESSAGE = {"type": "CONNECTED", "message": "Server Response: OK"}
INVALID_MESSAGE = "Invalid message format"


class JourneySyncChannel:
    """Turn one inbound socket text frame into one reply.

    Supported frames are ``{"type": "PING"}`` and
    ``{"type": "SYNC_OPS", "payload": [op, ...]}``. Anything else gets an
    ``ERROR`` reply and the connection stays open.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        principal_id: UUID | None = None,
        op_log_factory: Callable[[AsyncSession], JourneyOpLog] = JourneyOpLog,
    ) -> None:
        self._op_log = op_log_factory(session)
        self._principal_id = principal_id

    @staticmethod
    def connected() -> dict[str, Any]:
        return dict(CONNECTED_MESSAGE)

    async def handle_text(self, text: str | None) -> dict[str, Any]:
        """Answer one frame; ``None`` stands for a frame that carried no text."""

        try:
            message = json.loads(text)
        except (TypeError, ValueError):
            return self._error(INVALID_MESSAGE)
        if not isinstance(message, dict):
            return self._error(INVALID_MESSAGE)

        message_type = message.get("type")
        if message_type == "PING":
            return {"type": "PONG"}
        if message_type != "SYNC_OPS":
            return self._error(INVALID_MESSAGE)

        ops = message.get("payload")
        if not isinstance(ops, list):
            return self._error(INVALID_MESSAGE)
        try:
            acks = await self._op_log.sync(ops, principal_id=self._principal_id, channel="websocket")
        except SyncBatchTooLargeError as exc:
            return self._error(str(exc))
        return {
            "type": "ACK",
            "payload": [
                {"opId": ack.op_id, "status": ack.status.value, "serverSeq": ack.server_seq}
                for ack in acks
            ],
        }

    @staticmethod
    def _error(message: str) -> dict[str, Any]:
        logger.warning("Rejected journey sync frame", reason=message)
        return {"type": "ERROR", "message": message}
