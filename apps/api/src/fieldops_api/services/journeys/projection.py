"""Fold journey ops into the journey read model."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.core.settings import settings
from fieldops_api.models.journey import (
    Journey,
    JourneyBreadcrumb,
    JourneyOp,
    JourneyOpType,
    JourneyStatus,
)

DEFAULT_SITE_NAME = "N/A Site"
_KM_QUANTUM = Decimal("0.001")


class ProjectionError(RuntimeError):
    """Raised when an op cannot be applied to the journey read model."""


class JourneyNotFoundError(ProjectionError):
    """Raised when a journey has no recorded ops or projection."""


def meters_to_km(meters: Any) -> Decimal:
    """Convert a client distance in meters to kilometers with three decimals."""

    if meters in (None, ""):
        return Decimal("0.000")
    try:
        value = Decimal(str(meters))
    except InvalidOperation as exc:
        raise ProjectionError(f"Invalid distance: {meters!r}") from exc
    if not value.is_finite() or value < 0:
        raise ProjectionError(f"Invalid distance: {meters!r}")
    return (value / Decimal(1000)).quantize(_KM_QUANTUM, rounding=ROUND_HALF_UP)


def _optional_str(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return str(value)


def _optional_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ProjectionError(f"Expected an integer, got {value!r}") from exc


def _optional_decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ProjectionError(f"Expected a number, got {value!r}") from exc


def _optional_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ProjectionError(f"Expected a number, got {value!r}") from exc


class JourneyProjector:
    """Apply ops to ``journeys`` (and optionally ``journey_breadcrumbs``).

    ``apply`` joins the caller's transaction; ``rebuild`` owns its own.
    """

    def __init__(self, session: AsyncSession, *, breadcrumbs_enabled: bool | None = None) -> None:
        self._session = session
        self._breadcrumbs_enabled = (
            settings.journey_breadcrumbs_enabled if breadcrumbs_enabled is None else breadcrumbs_enabled
        )

    async def apply(self, op: JourneyOp) -> Journey | None:
        if op.op_type == JourneyOpType.START:
            return await self._start(op)
        if op.op_type == JourneyOpType.STOP:
            return await self._stop(op)
        if self._breadcrumbs_enabled:
            await self._move(op)
        return None

    async def rebuild(self, journey_id: str) -> Journey:
        """Drop the projection for ``journey_id`` and refold its ops in server order."""

        try:
            ops = list(
                (
                    await self._session.execute(
                        select(JourneyOp)
                        .where(JourneyOp.journey_id == journey_id)
                        .order_by(JourneyOp.server_seq)
                    )
                ).scalars()
            )
            if not ops:
                raise JourneyNotFoundError(f"No ops recorded for journey {journey_id}")

            await self._session.execute(
                delete(JourneyBreadcrumb).where(JourneyBreadcrumb.journey_id == journey_id)
            )
            await self._session.execute(delete(Journey).where(Journey.id == journey_id))
            self._session.expunge_all()

            for op in ops:
                await self.apply(op)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        journey = await self._session.get(Journey, journey_id, populate_existing=True)
        if journey is None:
            raise ProjectionError(f"Journey {journey_id} has no START op to rebuild from")
        logger.info("Rebuilt journey projection", journey_id=journey_id, ops=len(ops))
        return journey

    async def _start(self, op: JourneyOp) -> Journey:
        existing = await self._session.get(Journey, op.journey_id)
        if existing is not None:
            raise ProjectionError(f"Journey {op.journey_id} already started")

        payload: Mapping[str, Any] = op.payload or {}
        journey = Journey(
            id=op.journey_id,
            user_id=op.user_id,
            status=JourneyStatus.ACTIVE,
            start_time=op.created_at,
            site_name=_optional_str(payload.get("siteName")) or DEFAULT_SITE_NAME,
            pjp_id=_optional_str(payload.get("pjpId")),
            site_id=_optional_str(payload.get("siteId")),
            dealer_id=_optional_str(payload.get("dealerId")),
            task_id=_optional_str(payload.get("taskId")),
            verified_dealer_id=_optional_int(payload.get("verifiedDealerId")),
            dest_lat=_optional_decimal(payload.get("destLat")),
            dest_lng=_optional_decimal(payload.get("destLng")),
            total_distance=Decimal("0.000"),
        )
        self._session.add(journey)
        await self._session.flush()
        return journey

    async def _stop(self, op: JourneyOp) -> Journey:
        journey = await self._session.get(Journey, op.journey_id)
        if journey is None:
            raise ProjectionError(f"Journey {op.journey_id} has not started")
        if journey.status == JourneyStatus.COMPLETED:
            raise ProjectionError(f"Journey {op.journey_id} already completed")

        payload: Mapping[str, Any] = op.payload or {}
        journey.status = JourneyStatus.COMPLETED
        journey.end_time = op.created_at
        journey.total_distance = meters_to_km(payload.get("totalDistance"))
        journey.updated_at = datetime.now(timezone.utc)
        await self._session.flush()
        return journey

    async def _move(self, op: JourneyOp) -> None:
        payload: Mapping[str, Any] = op.payload or {}
        latitude = _optional_float(payload.get("latitude"))
        longitude = _optional_float(payload.get("longitude"))
        if latitude is None or longitude is None:
            raise ProjectionError("MOVE ops require latitude and longitude")

        self._session.add(
            JourneyBreadcrumb(
                journey_id=op.journey_id,
                server_seq=op.server_seq,
                latitude=latitude,
                longitude=longitude,
                h3_index=_optional_str(payload.get("h3Index")),
                speed=_optional_float(payload.get("speed")),
                accuracy=_optional_float(payload.get("accuracy")),
                heading=_optional_float(payload.get("heading")),
                altitude=_optional_float(payload.get("altitude")),
                battery_level=_optional_float(payload.get("batteryLevel")),
                is_mocked=bool(payload.get("isMocked", False)),
                recorded_at=op.created_at,
            )
        )
        await self._session.flush()
