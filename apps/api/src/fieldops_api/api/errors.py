"""Translate loyalty domain failures into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status
from loguru import logger
from sqlalchemy.exc import IntegrityError

from fieldops_api.services.loyalty.errors import (
    ApprovalError,
    InsufficientPointsError,
    InsufficientStockError,
    InvalidTransitionError,
    RecordNotFoundError,
    TransitionConflictError,
)


def http_error_for(exc: Exception) -> HTTPException:
    if isinstance(exc, RecordNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, TransitionConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (InvalidTransitionError, InsufficientStockError, InsufficientPointsError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, IntegrityError):
        logger.warning("Loyalty write violated a constraint", error=str(exc.orig))
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Conflicting write; the record was already processed",
        )
    if isinstance(exc, (ApprovalError, ValueError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.exception("Unhandled loyalty failure", error=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
