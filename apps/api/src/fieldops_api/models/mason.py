"""Mason (loyalty account) and KYC submission models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from fieldops_api.db.base import Base


class KycStatus(str, Enum):
    """KYC lifecycle shared by submissions and the account mirror field."""

    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Mason(Base):
    """Loyalty account with denormalized point and bag counters.

    ``points_balance`` caches the sum of the account's ledger entries and
    ``bags_lifted`` the sum of its approved bag lifts. Both are only written in
    the same transaction as the ledger entry or status change they mirror.
    """

    __tablename__ = "masons"
    __table_args__ = (
        Index("idx_masons_dealer_id", "dealer_id"),
        Index("idx_masons_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    phone_number = Column(String(32), nullable=False)
    kyc_document_name = Column(String(100), nullable=True)
    kyc_document_id_num = Column(String(150), nullable=True)
    kyc_status = Column(
        SqlEnum(KycStatus, name="kyc_status"),
        nullable=False,
        default=KycStatus.NONE,
        server_default=KycStatus.NONE.name,
    )
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    bags_lifted = Column(Integer, nullable=False, default=0, server_default="0")
    referred_by_id = Column(
        UUID(as_uuid=True),
        ForeignKey("masons.id", ondelete="SET NULL"),
        nullable=True,
    )
    dealer_id = Column(String(255), nullable=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    device_id = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    referred_by = relationship("Mason", remote_side=[id])
    kyc_submissions = relationship(
        "KycSubmission", back_populates="mason", cascade="all, delete-orphan"
    )


class KycSubmission(Base):
    """Identity documents submitted by a mason for verification."""

    __tablename__ = "kyc_submissions"
    __table_args__ = (Index("idx_kyc_submissions_mason_id", "mason_id"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    mason_id = Column(UUID(as_uuid=True), ForeignKey("masons.id", ondelete="CASCADE"), nullable=False)
    aadhaar_number = Column(String(20), nullable=True)
    pan_number = Column(String(20), nullable=True)
    voter_id_number = Column(String(20), nullable=True)
    documents = Column(JSON, nullable=True)
    status = Column(
        SqlEnum(KycStatus, name="kyc_status"),
        nullable=False,
        default=KycStatus.PENDING,
        server_default=KycStatus.PENDING.name,
    )
    remark = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    mason = relationship("Mason", back_populates="kyc_submissions")
