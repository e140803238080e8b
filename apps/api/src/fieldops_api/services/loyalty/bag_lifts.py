"""Bag lift submission and approval state machine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops_api.models.loyalty import BagLift, BagLiftStatus, LedgerSourceType
from fieldops_api.models.mason import Mason
from fieldops_api.observability.loyalty import get_loyalty_store
from fieldops_api.services.loyalty.errors import (
    InvalidTransitionError,
    RecordNotFoundError,
    TransitionConflictError,
)
from fieldops_api.services.loyalty.ledger import PointsLedgerService
from fieldops_api.services.loyalty.policy import PointsPolicy, default_policy

VERIFICATION_FIELDS = frozenset(
    {
        "dealer_id",
        "site_id",
        "site_key_person_name",
        "site_key_person_phone",
        "verification_site_image_url",
        "verification_proof_image_url",
    }
)
BLANK_AS_NULL_FIELDS = frozenset({"dealer_id", "site_id"})
CORRECTION_FIELDS = frozenset({"bag_count", "purchase_date", "image_url"})


class BagLiftStateMachine:
    """Approve, reject and reverse bag lifts with their ledger side effects.

    pending -> approved credits the lift (plus slab and referral bonuses),
    pending -> rejected only records the decision, and approved -> rejected
    reverses the base credit once. Rejected lifts accept no further changes.
    Slab and referral bonuses already paid are not clawed back on reversal.
    """

    _ALLOWED_TRANSITIONS: dict[BagLiftStatus, set[BagLiftStatus]] = {
        BagLiftStatus.PENDING: {BagLiftStatus.APPROVED, BagLiftStatus.REJECTED},
        BagLiftStatus.APPROVED: {BagLiftStatus.REJECTED},
        BagLiftStatus.REJECTED: set(),
    }

    def __init__(self, session: AsyncSession, *, policy: PointsPolicy | None = None) -> None:
        self._session = session
        self._policy = policy or default_policy()
        self._ledger = PointsLedgerService(session)

    async def create(
        self,
        *,
        mason_id: UUID,
        bag_count: int,
        purchase_date: datetime,
        dealer_id: str | None = None,
        image_url: str | None = None,
        site_id: str | None = None,
    ) -> BagLift:
        """Record a pending lift with its points fixed at submission time."""

        if bag_count <= 0:
            raise ValueError("bag_count must be positive")

        try:
            exists = await self._session.scalar(select(Mason.id).where(Mason.id == mason_id))
            if exists is None:
                raise RecordNotFoundError(f"Mason {mason_id} not found")

            lift = BagLift(
                mason_id=mason_id,
                bag_count=bag_count,
                purchase_date=purchase_date,
                points_credited=self._policy.base_points(bag_count, purchase_date),
                dealer_id=dealer_id or None,
                image_url=image_url,
                site_id=site_id or None,
                status=BagLiftStatus.PENDING,
            )
            self._session.add(lift)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        await self._session.refresh(lift)
        logger.info(
            "Bag lift submitted",
            bag_lift_id=str(lift.id),
            mason_id=str(mason_id),
            bag_count=bag_count,
            points_credited=lift.points_credited,
        )
        return lift

    async def transition(
        self,
        *,
        bag_lift_id: UUID,
        target_status: BagLiftStatus,
        approver_id: UUID | None,
        memo: str | None = None,
        verification: Mapping[str, Any] | None = None,
        corrections: Mapping[str, Any] | None = None,
    ) -> BagLift:
        """Move a lift to ``target_status`` in a single transaction.

        ``corrections`` (``bag_count``, ``purchase_date``, ``image_url``) are only
        accepted while the lift is pending and re-price ``points_credited``.
        """

        try:
            lift = await self._get_lift(bag_lift_id)
            current_status = lift.status
            self._ensure_allowed(current_status, target_status)

            now = datetime.now(timezone.utc)
            values: dict[str, Any] = {
                key: (value or None) if key in BLANK_AS_NULL_FIELDS else value
                for key, value in (verification or {}).items()
                if key in VERIFICATION_FIELDS
            }
            values.update(self._apply_corrections(lift, current_status, corrections))
            values["status"] = target_status
            values["approved_by"] = approver_id
            if target_status == BagLiftStatus.APPROVED:
                values["approved_at"] = now
            if current_status == BagLiftStatus.APPROVED:
                values["reversed_at"] = now

            result = await self._session.execute(
                update(BagLift)
                .where(BagLift.id == lift.id, BagLift.status == current_status)
                .values(**values)
            )
            if result.rowcount == 0:
                raise TransitionConflictError(
                    f"Bag lift {bag_lift_id} changed status concurrently; expected {current_status.value}"
                )

            if target_status == BagLiftStatus.APPROVED:
                await self._credit(lift, memo)
            elif current_status == BagLiftStatus.APPROVED:
                await self._reverse(lift, memo)

            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        await self._session.refresh(lift)
        get_loyalty_store().record_transition("bag_lift", current_status.value, target_status.value)
        logger.info(
            "Bag lift status transitioned",
            bag_lift_id=str(lift.id),
            mason_id=str(lift.mason_id),
            from_status=current_status.value,
            to_status=target_status.value,
            approver_id=str(approver_id) if approver_id else None,
        )
        return lift

    async def get(self, bag_lift_id: UUID) -> BagLift:
        return await self._get_lift(bag_lift_id)

    def _apply_corrections(
        self,
        lift: BagLift,
        current_status: BagLiftStatus,
        corrections: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        changes = {key: value for key, value in (corrections or {}).items() if value is not None}
        if not changes:
            return {}
        unknown = set(changes) - CORRECTION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported bag lift corrections: {sorted(unknown)}")
        if current_status != BagLiftStatus.PENDING:
            raise ValueError("Bag lift corrections are only accepted while pending")
        if "bag_count" in changes and int(changes["bag_count"]) <= 0:
            raise ValueError("bag_count must be positive")

        for key, value in changes.items():
            setattr(lift, key, value)
        changes["points_credited"] = self._policy.base_points(int(lift.bag_count), lift.purchase_date)
        lift.points_credited = changes["points_credited"]
        return changes

    def _ensure_allowed(self, current: BagLiftStatus, target: BagLiftStatus) -> None:
        if target == current:
            raise InvalidTransitionError("bag lift", current, target, "status unchanged")
        if target not in self._ALLOWED_TRANSITIONS.get(current, set()):
            reason = "rejected is terminal" if current == BagLiftStatus.REJECTED else None
            raise InvalidTransitionError("bag lift", current, target, reason)

    async def _credit(self, lift: BagLift, memo: str | None) -> None:
        mason = await self._session.scalar(
            select(Mason)
            .where(Mason.id == lift.mason_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if mason is None:
            raise RecordNotFoundError(f"Mason {lift.mason_id} not found")

        prior_bags = int(mason.bags_lifted or 0)
        referrer_id = mason.referred_by_id
        bag_count = int(lift.bag_count)
        points = int(lift.points_credited)

        if points:
            await self._ledger.record_entry(
                mason.id,
                source_type=LedgerSourceType.BAG_LIFT,
                source_id=lift.id,
                points=points,
                memo=memo or f"Credit for {bag_count} bags.",
                bags_delta=bag_count,
            )
        else:
            await self._ledger.adjust_bags(mason.id, bag_count)

        extra_bonus = self._policy.extra_bonus_amount(prior_bags, bag_count, lift.purchase_date)
        if extra_bonus > 0:
            await self._ledger.record_entry(
                mason.id,
                source_type=LedgerSourceType.ADJUSTMENT,
                points=extra_bonus,
                memo=f"Extra Bonus: Slab Crossed via BagLift {lift.id}.",
            )

        if referrer_id is not None:
            referral_bonus = self._policy.referral_bonus_amount(prior_bags, bag_count)
            if referral_bonus > 0:
                await self._ledger.record_entry(
                    referrer_id,
                    source_type=LedgerSourceType.REFERRAL_BONUS,
                    source_id=lift.id,
                    points=referral_bonus,
                    memo=f"Referral bonus for Mason {mason.id}.",
                )

    async def _reverse(self, lift: BagLift, memo: str | None) -> None:
        points = int(lift.points_credited)
        bag_count = int(lift.bag_count)
        if points:
            await self._ledger.record_entry(
                lift.mason_id,
                source_type=LedgerSourceType.ADJUSTMENT,
                source_id=lift.id,
                points=-points,
                memo=memo or f"Debit: Bag Lift {lift.id} rejected after approval.",
                bags_delta=-bag_count,
            )
        else:
            await self._ledger.adjust_bags(lift.mason_id, -bag_count)

    async def _get_lift(self, bag_lift_id: UUID) -> BagLift:
        stmt = (
            select(BagLift)
            .where(BagLift.id == bag_lift_id)
            .execution_options(populate_existing=True)
        )
        lift = await self._session.scalar(stmt)
        if lift is None:
            raise RecordNotFoundError(f"Bag lift {bag_lift_id} not found")
        return lift
