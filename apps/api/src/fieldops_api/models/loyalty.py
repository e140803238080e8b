"""Points ledger, bag lift, reward and redemption models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from fieldops_api.db.base import Base


class LedgerSourceType(str, Enum):
    """Causal event kinds that may produce a ledger entry."""

    BAG_LIFT = "bag_lift"
    REDEMPTION = "redemption"
    ADJUSTMENT = "adjustment"
    JOINING_BONUS = "joining_bonus"
    REFERRAL_BONUS = "referral_bonus"


class PointsLedgerEntry(Base):
    """Immutable signed point delta; the ledger is the source of truth for balances."""

    __tablename__ = "points_ledger"
    __table_args__ = (
        UniqueConstraint("source_type", "source_id", name="uq_points_ledger_source"),
        Index("idx_points_ledger_mason_id", "mason_id"),
        Index("idx_points_ledger_source_id", "source_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    mason_id = Column(UUID(as_uuid=True), ForeignKey("masons.id", ondelete="CASCADE"), nullable=False)
    source_type = Column(SqlEnum(LedgerSourceType, name="points_ledger_source_type"), nullable=False)
    source_id = Column(UUID(as_uuid=True), nullable=True)
    points = Column(Integer, nullable=False)
    memo = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    mason = relationship("Mason")


class BagLiftStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BagLift(Base):
    """A mason's claim of lifted cement bags awaiting verification."""

    __tablename__ = "bag_lifts"
    __table_args__ = (
        Index("idx_bag_lifts_mason_id", "mason_id"),
        Index("idx_bag_lifts_status", "status"),
        Index("idx_bag_lifts_site_id", "site_id"),
        CheckConstraint("bag_count > 0", name="ck_bag_lifts_bag_count_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    mason_id = Column(UUID(as_uuid=True), ForeignKey("masons.id", ondelete="CASCADE"), nullable=False)
    dealer_id = Column(String(255), nullable=True)
    purchase_date = Column(DateTime(timezone=True), nullable=False)
    bag_count = Column(Integer, nullable=False)
    points_credited = Column(Integer, nullable=False)
    status = Column(
        SqlEnum(BagLiftStatus, name="bag_lift_status"),
        nullable=False,
        default=BagLiftStatus.PENDING,
        server_default=BagLiftStatus.PENDING.name,
    )
    image_url = Column(Text, nullable=True)
    site_id = Column(String(255), nullable=True)
    site_key_person_name = Column(String(255), nullable=True)
    site_key_person_phone = Column(String(20), nullable=True)
    verification_site_image_url = Column(Text, nullable=True)
    verification_proof_image_url = Column(Text, nullable=True)
    approved_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    reversed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    mason = relationship("Mason")


class Reward(Base):
    """Redeemable catalogue item with a stock counter."""

    __tablename__ = "rewards"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_rewards_stock_non_negative"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_name = Column(String(255), nullable=False, unique=True)
    point_cost = Column(Integer, nullable=False)
    total_available_quantity = Column(Integer, nullable=False, default=0, server_default="0")
    stock = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    redemptions = relationship("RewardRedemption", back_populates="reward")


class RedemptionStatus(str, Enum):
    PLACED = "placed"
    APPROVED = "approved"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    REJECTED = "rejected"


class RewardRedemption(Base):
    """Points-for-reward exchange; points are debited when the order is placed."""

    __tablename__ = "reward_redemptions"
    __table_args__ = (
        Index("idx_reward_redemptions_mason_id", "mason_id"),
        Index("idx_reward_redemptions_status", "status"),
        CheckConstraint("quantity > 0", name="ck_reward_redemptions_quantity_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    mason_id = Column(UUID(as_uuid=True), ForeignKey("masons.id", ondelete="CASCADE"), nullable=False)
    reward_id = Column(Integer, ForeignKey("rewards.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1, server_default="1")
    status = Column(
        SqlEnum(RedemptionStatus, name="reward_redemption_status"),
        nullable=False,
        default=RedemptionStatus.PLACED,
        server_default=RedemptionStatus.PLACED.name,
    )
    fulfillment_notes = Column(Text, nullable=True)
    points_debited = Column(Integer, nullable=False)
    delivery_name = Column(String(160), nullable=True)
    delivery_phone = Column(String(20), nullable=True)
    delivery_address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    mason = relationship("Mason")
    reward = relationship("Reward", back_populates="redemptions")
