"""Loyalty service exports."""

from .bag_lifts import BagLiftStateMachine  # noqa: F401
from .errors import (  # noqa: F401
    ApprovalError,
    InsufficientPointsError,
    InsufficientStockError,
    InvalidTransitionError,
    RecordNotFoundError,
    TransitionConflictError,
)
from .kyc import KycApprovalService  # noqa: F401
from .ledger import LedgerReconciliation, PointsLedgerService  # noqa: F401
from .policy import PointsPolicy, default_policy  # noqa: F401
from .redemptions import RedemptionStateMachine  # noqa: F401
