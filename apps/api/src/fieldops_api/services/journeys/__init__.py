"""Journey op log, projection and sync channel."""

from .channel import JourneySyncChannel  # noqa: F401
from .op_log import (  # noqa: F401
    JourneyOpAck,
    JourneyOpAckStatus,
    JourneyOpLog,
    OpRejectedError,
    SyncBatchTooLargeError,
)
from .projection import (  # noqa: F401
    JourneyNotFoundError,
    JourneyProjector,
    ProjectionError,
    meters_to_km,
)
