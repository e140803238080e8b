from fastapi import APIRouter

from .endpoints import (
    bag_lifts,
    health,
    journey_ops,
    kyc_submissions,
    masons,
    observability,
    rewards,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(masons.router)
router.include_router(bag_lifts.router)
router.include_router(kyc_submissions.router)
router.include_router(rewards.router)
router.include_router(journey_ops.router)
router.include_router(observability.router)
