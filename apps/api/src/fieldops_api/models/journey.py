"""Journey operation log and its projected read models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from fieldops_api.db.base import Base


class JourneyOpType(str, Enum):
    START = "START"
    MOVE = "MOVE"
    STOP = "STOP"


class JourneyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class JourneyOp(Base):
    """Append-only, client-idempotent record of a journey lifecycle event.

    ``server_seq`` is assigned by the database on insert and defines the global
    replay order; ``op_id`` is the client's idempotency key.
    """

    __tablename__ = "journey_ops"
    __table_args__ = (
        Index("idx_journey_ops_journey", "journey_id"),
        Index("idx_journey_ops_user", "user_id"),
        Index("idx_journey_ops_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    server_seq = Column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    op_id = Column(UUID(as_uuid=True), nullable=False, unique=True)
    journey_id = Column(String(255), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    op_type = Column("type", SqlEnum(JourneyOpType, name="journey_op_type"), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    local_seq = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Journey(Base):
    """Materialized view of a journey folded from its ops in ``server_seq`` order."""

    __tablename__ = "journeys"
    __table_args__ = (Index("idx_journeys_user_status", "user_id", "status"),)

    id = Column(String(255), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    pjp_id = Column(String(255), nullable=True)
    site_id = Column(String(255), nullable=True)
    dealer_id = Column(String(255), nullable=True)
    task_id = Column(String(255), nullable=True)
    verified_dealer_id = Column(Integer, nullable=True)
    site_name = Column(String(255), nullable=True)
    dest_lat = Column(Numeric(10, 7), nullable=True)
    dest_lng = Column(Numeric(10, 7), nullable=True)
    status = Column(
        SqlEnum(JourneyStatus, name="journey_status"),
        nullable=False,
        default=JourneyStatus.ACTIVE,
        server_default=JourneyStatus.ACTIVE.name,
    )
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    total_distance = Column(Numeric(10, 3), nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    breadcrumbs = relationship(
        "JourneyBreadcrumb",
        back_populates="journey",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class JourneyBreadcrumb(Base):
    """GPS telemetry point projected from a MOVE op."""

    __tablename__ = "journey_breadcrumbs"
    __table_args__ = (Index("idx_breadcrumbs_journey_time", "journey_id", "recorded_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    journey_id = Column(String(255), ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False)
    server_seq = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=False, unique=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    h3_index = Column(String(15), nullable=True)
    speed = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    altitude = Column(Float, nullable=True)
    battery_level = Column(Float, nullable=True)
    is_mocked = Column(Boolean, nullable=False, default=False, server_default="false")
    recorded_at = Column(DateTime(timezone=True), nullable=False)

    journey = relationship("Journey", back_populates="breadcrumbs")
