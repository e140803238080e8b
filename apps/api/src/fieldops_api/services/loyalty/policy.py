"""Points policy: pure bonus arithmetic over cumulative bag counters.

Every function here is deterministic in its arguments so that a transition
retried inside a new transaction computes exactly the same amounts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from fieldops_api.core.settings import Settings, settings as default_settings


def _as_date(value: date | datetime | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value


def _within(day: date | None, start: date | None, end: date | None) -> bool:
    if start is None and end is None:
        return True
    if day is None:
        return False
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


@dataclass(frozen=True, slots=True)
class PointsPolicy:
    """Loyalty scheme constants; build from settings with :meth:`from_settings`."""

    points_per_bag: int = 10
    bonanza_points_per_bag: int | None = None
    bonanza_start: date | None = None
    bonanza_end: date | None = None
    joining_bonus_points: int = 250
    extra_bonus_slab_size: int = 200
    extra_bonus_points: int = 500
    extra_bonus_start: date | None = None
    extra_bonus_end: date | None = None
    referral_threshold_bags: int = 200
    referral_bonus_points: int = 1000

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "PointsPolicy":
        config = config or default_settings
        return cls(
            points_per_bag=config.points_per_bag,
            bonanza_points_per_bag=config.bonanza_points_per_bag,
            bonanza_start=config.bonanza_start,
            bonanza_end=config.bonanza_end,
            joining_bonus_points=config.joining_bonus_points,
            extra_bonus_slab_size=config.extra_bonus_slab_size,
            extra_bonus_points=config.extra_bonus_points,
            extra_bonus_start=config.extra_bonus_start,
            extra_bonus_end=config.extra_bonus_end,
            referral_threshold_bags=config.referral_bonus_threshold_bags,
            referral_bonus_points=config.referral_bonus_points,
        )

    def base_points(self, bag_count: int, purchase_date: date | datetime | None) -> int:
        """Points credited for a lift, using the bonanza rate inside its window."""

        if bag_count <= 0:
            return 0
        rate = self.points_per_bag
        if self.bonanza_points_per_bag is not None and (
            self.bonanza_start is not None or self.bonanza_end is not None
        ):
            if _within(_as_date(purchase_date), self.bonanza_start, self.bonanza_end):
                rate = self.bonanza_points_per_bag
        return max(bag_count * rate, 0)

    def joining_bonus_amount(self) -> int:
        return max(self.joining_bonus_points, 0)

    def extra_bonus_amount(
        self,
        prior_cumulative_bags: int,
        bags_in_this_lift: int,
        lift_date: date | datetime | None = None,
    ) -> int:
        """Bonus for every slab boundary in ``(prior, prior + bags]``.

        A boundary the account had already reached before this lift never pays
        again, however far this lift goes past it.
        """

        slab = self.extra_bonus_slab_size
        if slab <= 0 or bags_in_this_lift <= 0 or self.extra_bonus_points <= 0:
            return 0
        if not _within(_as_date(lift_date), self.extra_bonus_start, self.extra_bonus_end):
            return 0
        prior = max(prior_cumulative_bags, 0)
        new_total = prior + bags_in_this_lift
        slabs_crossed = new_total // slab - prior // slab
        return max(slabs_crossed, 0) * self.extra_bonus_points

    def referral_bonus_amount(self, prior_cumulative_bags: int, bags_in_this_lift: int) -> int:
        """One-time referrer bonus when the referred account reaches the threshold."""

        threshold = self.referral_threshold_bags
        if bags_in_this_lift <= 0 or self.referral_bonus_points <= 0:
            return 0
        new_total = prior_cumulative_bags + bags_in_this_lift
        if prior_cumulative_bags < threshold <= new_total:
            return self.referral_bonus_points
        return 0


def default_policy() -> PointsPolicy:
    return PointsPolicy.from_settings()
