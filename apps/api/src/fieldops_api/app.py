from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from fieldops_api.core.settings import settings
from fieldops_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .workers import LedgerReconciliationWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    reconciliation_worker = LedgerReconciliationWorker(
        session_factory=_session_factory,
        interval_seconds=settings.ledger_reconciliation_interval_seconds,
        trigger_label=settings.ledger_reconciliation_trigger_label,
    )
    app.state.ledger_reconciliation_worker = reconciliation_worker

    reconciliation_enabled = settings.ledger_reconciliation_worker_enabled
    if reconciliation_enabled:
        reconciliation_worker.start()
        logger.info(
            "Ledger reconciliation worker enabled",
            interval_seconds=reconciliation_worker.interval_seconds,
        )
    else:
        logger.info(
            "Ledger reconciliation worker disabled",
            reason="ledger_reconciliation_worker_enabled is false",
        )

    logger.info(
        "Journey breadcrumb projection configured",
        enabled=settings.journey_breadcrumbs_enabled,
        max_batch_size=settings.journey_sync_max_batch_size,
    )

    try:
        yield
    finally:
        if reconciliation_enabled and reconciliation_worker.is_running:
            await reconciliation_worker.stop()


def create_app() -> FastAPI:
    """Application factory for the field operations FastAPI service."""
    configure_logging(
        service_name="fieldops-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Field Operations API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="fieldops-api",
        service_version=APP_VERSION,
        environment=settings.environment,
        console_fallback=settings.otel_console_export,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
