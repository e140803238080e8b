from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from fieldops_api.db.base import Base


class UserRoleEnum(str, Enum):
    ADMIN = "admin"
    TSO = "tso"
    SALES_EXECUTIVE = "sales_executive"
    FIELD_OFFICER = "field_officer"


class UserStatusEnum(str, Enum):
    ACTIVE = "active"
    INVITED = "invited"
    SUSPENDED = "suspended"


class User(Base):
    """Staff member: approver on loyalty records and owner of journeys."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=True)
    phone_number = Column(String(32), nullable=True)
    region = Column(String(100), nullable=True)
    area = Column(String(100), nullable=True)
    role = Column(
        String(length=32),
        nullable=False,
        default=UserRoleEnum.FIELD_OFFICER.value,
        server_default=UserRoleEnum.FIELD_OFFICER.value,
    )
    status = Column(
        String(length=16),
        nullable=False,
        default=UserStatusEnum.ACTIVE.value,
        server_default=UserStatusEnum.ACTIVE.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
