from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.core.settings import settings
from fieldops_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/healthz", include_in_schema=False)
async def service_health_alias() -> dict[str, str]:
    """Backward-compatible alias under /health."""

    return await service_health()


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except Exception as error:
        components["database"] = ComponentStatus(
            status="error",
            detail=f"Database unreachable ({error.__class__.__name__})",
            last_error_at=datetime.now(timezone.utc).isoformat(),
        )
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    worker = getattr(request.app.state, "ledger_reconciliation_worker", None)
    if settings.ledger_reconciliation_worker_enabled and worker is not None:
        running = bool(getattr(worker, "is_running", False))
        worker_status: Literal["ready", "starting"] = "ready" if running else "starting"
        detail = None if running else "Ledger reconciliation worker not running"
        if not running and status == "ready":
            status = "degraded"
        components["ledger_reconciliation"] = ComponentStatus(status=worker_status, detail=detail)
    else:
        components["ledger_reconciliation"] = ComponentStatus(
            status="disabled",
            detail="Ledger reconciliation worker disabled via settings",
        )

    components["journey_breadcrumbs"] = ComponentStatus(
        status="ready" if settings.journey_breadcrumbs_enabled else "disabled",
        detail=None if settings.journey_breadcrumbs_enabled else "MOVE ops are logged without breadcrumbs",
    )

    return ReadinessPayload(status=status, components=components)


@router.get("/health/readyz", include_in_schema=False)
async def service_readiness_alias(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    """Backward-compatible alias for readiness checks under /health."""

    return await service_readiness(request, session)
