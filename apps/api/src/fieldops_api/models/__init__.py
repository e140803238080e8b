"""SQLAlchemy models package."""

from .user import User, UserRoleEnum, UserStatusEnum  # noqa: F401
from .mason import KycStatus, KycSubmission, Mason  # noqa: F401
from .loyalty import (  # noqa: F401
    BagLift,
    BagLiftStatus,
    LedgerSourceType,
    PointsLedgerEntry,
    RedemptionStatus,
    Reward,
    RewardRedemption,
)
from .journey import (  # noqa: F401
    Journey,
    JourneyBreadcrumb,
    JourneyOp,
    JourneyOpType,
    JourneyStatus,
)
