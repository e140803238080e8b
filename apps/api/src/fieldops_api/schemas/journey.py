from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fieldops_api.models.journey import JourneyOpType


class JourneyOpIn(BaseModel):
    """A single client-generated journey operation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    op_id: UUID = Field(..., alias="opId")
    journey_id: str = Field(..., alias="journeyId", min_length=1, max_length=255)
    type: JourneyOpType
    payload: dict[str, Any] = Field(default_factory=dict)
    local_seq: int | None = Field(None, alias="localSeq")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="createdAt")
    user_id: UUID | None = Field(None, alias="userId")

    @field_validator("journey_id")
    @classmethod
    def _strip_journey_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("journeyId must not be blank")
        return value

    @field_validator("payload", mode="before")
    @classmethod
    def _default_payload(cls, value: Any) -> Any:
        return {} if value is None else value


class JourneyOpSyncRequest(BaseModel):
    """HTTP sync body; ops stay raw so one malformed op only fails its own ack."""

    last_server_seq: int = Field(0, alias="lastServerSeq", ge=0)
    ops: list[Any] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class JourneyOpResponse(BaseModel):
    serverSeq: int
    opId: UUID
    journeyId: str
    userId: UUID
    type: JourneyOpType
    payload: dict[str, Any]
    localSeq: int | None
    createdAt: datetime


class JourneyResponse(BaseModel):
    id: str
    userId: UUID
    status: str
    pjpId: str | None
    siteId: str | None
    dealerId: str | None
    taskId: str | None
    verifiedDealerId: int | None
    siteName: str | None
    destLat: Decimal | None
    destLng: Decimal | None
    startTime: datetime
    endTime: datetime | None
    totalDistance: Decimal
    breadcrumbCount: int = 0
