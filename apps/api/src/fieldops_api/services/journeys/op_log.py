"""Append-only, client-idempotent journey operation log."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable
from uuid import UUID

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.core.settings import settings
from fieldops_api.models.journey import Journey, JourneyOp, JourneyOpType
from fieldops_api.models.user import User
from fieldops_api.observability.loyalty import get_loyalty_store
from fieldops_api.observability.tracing import get_tracer
from fieldops_api.schemas.journey import JourneyOpIn
from fieldops_api.services.journeys.projection import JourneyProjector


class JourneyOpAckStatus(str, Enum):
    OK = "OK"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    FAILED = "FAILED"


class OpRejectedError(RuntimeError):
    """Raised when an op cannot be accepted into the log."""


class SyncBatchTooLargeError(ValueError):
    """Raised when a sync call carries more ops than the configured maximum."""


@dataclass(slots=True)
class JourneyOpAck:
    op_id: str | None
    status: JourneyOpAckStatus
    server_seq: int | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "opId": self.op_id,
            "status": self.status.value,
            "serverSeq": self.server_seq,
        }
        if self.error:
            payload["error"] = self.error
        return payload


def _raw_op_id(raw: Any) -> str | None:
    if isinstance(raw, dict):
        value = raw.get("opId", raw.get("op_id"))
        return None if value is None else str(value)
    return None


class JourneyOpLog:
    """Deduplicate, sequence and project client journey ops.

    Ops in a batch are handled one after another, each in its own
    transaction, so an op sees every earlier op of the same batch and a failed
    op leaves no trace for the client to retry against.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        projector: JourneyProjector | None = None,
        max_batch_size: int | None = None,
    ) -> None:
        self._session = session
        self._projector = projector or JourneyProjector(session)
        self._max_batch_size = max_batch_size or settings.journey_sync_max_batch_size

    async def sync(
        self,
        raw_ops: Iterable[Any],
        *,
        principal_id: UUID | None = None,
        channel: str = "http",
    ) -> list[JourneyOpAck]:
        """Acknowledge every op individually; never raises for a single bad op."""

        ops = list(raw_ops)
        if len(ops) > self._max_batch_size:
            raise SyncBatchTooLargeError(
                f"Sync batch of {len(ops)} ops exceeds the limit of {self._max_batch_size}"
            )

        store = get_loyalty_store()
        acks: list[JourneyOpAck] = []
        with get_tracer().start_as_current_span("journey_ops.sync") as span:
            span.set_attribute("journey_ops.channel", channel)
            span.set_attribute("journey_ops.count", len(ops))
            for raw in ops:
                try:
                    op = JourneyOpIn.model_validate(raw)
                except ValidationError as exc:
                    ack = JourneyOpAck(
                        op_id=_raw_op_id(raw),
                        status=JourneyOpAckStatus.FAILED,
                        error=f"Invalid op: {exc.error_count()} validation error(s)",
                    )
                    logger.warning("Rejected malformed journey op", op_id=ack.op_id, channel=channel)
                else:
                    ack = await self.append(op, principal_id=principal_id)
                store.record_sync_ack(ack.status.value, channel)
                acks.append(ack)

        logger.info(
            "Journey ops synced",
            channel=channel,
            received=len(ops),
            ok=sum(1 for ack in acks if ack.status == JourneyOpAckStatus.OK),
            failed=sum(1 for ack in acks if ack.status == JourneyOpAckStatus.FAILED),
        )
        return acks

    async def append(self, op: JourneyOpIn, *, principal_id: UUID | None = None) -> JourneyOpAck:
        op_id = str(op.op_id)

        existing_seq = await self._existing_seq(op.op_id)
        if existing_seq is not None:
            return JourneyOpAck(op_id, JourneyOpAckStatus.ALREADY_PROCESSED, existing_seq)

        try:
            user_id = await self._resolve_user(op, principal_id)
            row = JourneyOp(
                op_id=op.op_id,
                journey_id=op.journey_id,
                user_id=user_id,
                op_type=op.type,
                payload=op.payload,
                local_seq=op.local_seq,
                created_at=op.created_at,
            )
            self._session.add(row)
            await self._session.flush()
            server_seq = int(row.server_seq)
            await self._projector.apply(row)
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            existing_seq = await self._existing_seq(op.op_id)
            if existing_seq is not None:
                return JourneyOpAck(op_id, JourneyOpAckStatus.ALREADY_PROCESSED, existing_seq)
            logger.warning("Journey op violated a constraint", op_id=op_id, error=str(exc.orig))
            return JourneyOpAck(op_id, JourneyOpAckStatus.FAILED, error="Constraint violation")
        except Exception as exc:
            await self._session.rollback()
            logger.warning(
                "Failed to process journey op",
                op_id=op_id,
                journey_id=op.journey_id,
                op_type=op.type.value,
                error=str(exc),
            )
            return JourneyOpAck(op_id, JourneyOpAckStatus.FAILED, error=str(exc))

        logger.debug(
            "Appended journey op",
            op_id=op_id,
            journey_id=op.journey_id,
            op_type=op.type.value,
            server_seq=server_seq,
        )
        return JourneyOpAck(op_id, JourneyOpAckStatus.OK, server_seq)

    async def pull(
        self,
        *,
        after_seq: int = 0,
        journey_id: str | None = None,
        limit: int = 500,
    ) -> list[JourneyOp]:
        stmt = select(JourneyOp).where(JourneyOp.server_seq > after_seq)
        if journey_id:
            stmt = stmt.where(JourneyOp.journey_id == journey_id)
        stmt = stmt.order_by(JourneyOp.server_seq).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def _existing_seq(self, op_id: UUID) -> int | None:
        seq = await self._session.scalar(select(JourneyOp.server_seq).where(JourneyOp.op_id == op_id))
        return None if seq is None else int(seq)

    async def _resolve_user(self, op: JourneyOpIn, principal_id: UUID | None) -> UUID:
        if op.type != JourneyOpType.START:
            user_id = await self._session.scalar(select(Journey.user_id).where(Journey.id == op.journey_id))
            if user_id is None:
                raise OpRejectedError(f"Invalid journeyId: {op.journey_id}")
            return user_id

        candidate = principal_id or op.user_id or op.payload.get("userId")
        if candidate is None:
            raise OpRejectedError("START ops require an owning user")
        try:
            user_id = candidate if isinstance(candidate, UUID) else UUID(str(candidate))
        except ValueError as exc:
            raise OpRejectedError(f"Invalid userId: {candidate}") from exc
        if await self._session.get(User, user_id) is None:
            raise OpRejectedError(f"User {user_id} not found")
        return user_id
