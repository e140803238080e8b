from datetime import date, datetime, timezone

from fieldops_api.services.loyalty.policy import PointsPolicy


def test_base_points_use_flat_rate_outside_bonanza() -> None:
    policy = PointsPolicy(
        points_per_bag=10,
        bonanza_points_per_bag=15,
        bonanza_start=date(2026, 10, 1),
        bonanza_end=date(2026, 10, 31),
    )

    assert policy.base_points(50, datetime(2026, 9, 30, tzinfo=timezone.utc)) == 500
    assert policy.base_points(50, datetime(2026, 10, 15, tzinfo=timezone.utc)) == 750
    assert policy.base_points(50, date(2026, 10, 31)) == 750
    assert policy.base_points(0, date(2026, 10, 15)) == 0


def test_bonanza_rate_needs_a_window() -> None:
    policy = PointsPolicy(points_per_bag=10, bonanza_points_per_bag=15)

    assert policy.base_points(4, date(2026, 10, 15)) == 40


def test_extra_bonus_pays_once_per_crossed_slab() -> None:
    policy = PointsPolicy(extra_bonus_slab_size=200, extra_bonus_points=500)

    assert policy.extra_bonus_amount(190, 5) == 0
    assert policy.extra_bonus_amount(198, 5) == 500
    assert policy.extra_bonus_amount(200, 10) == 0
    assert policy.extra_bonus_amount(199, 401) == 1500
    assert policy.extra_bonus_amount(0, 0) == 0


def test_extra_bonus_respects_campaign_window() -> None:
    policy = PointsPolicy(
        extra_bonus_slab_size=200,
        extra_bonus_points=500,
        extra_bonus_start=date(2026, 1, 1),
        extra_bonus_end=date(2026, 12, 31),
    )

    assert policy.extra_bonus_amount(198, 5, date(2025, 12, 31)) == 0
    assert policy.extra_bonus_amount(198, 5, datetime(2026, 6, 1, tzinfo=timezone.utc)) == 500
    assert policy.extra_bonus_amount(198, 5, None) == 0


def test_referral_bonus_only_on_threshold_crossing() -> None:
    policy = PointsPolicy(referral_threshold_bags=200, referral_bonus_points=1000)

    assert policy.referral_bonus_amount(150, 60) == 1000
    assert policy.referral_bonus_amount(0, 200) == 1000
    assert policy.referral_bonus_amount(0, 199) == 0
    assert policy.referral_bonus_amount(200, 10) == 0


def test_joining_bonus_is_never_negative() -> None:
    assert PointsPolicy(joining_bonus_points=250).joining_bonus_amount() == 250
    assert PointsPolicy(joining_bonus_points=-5).joining_bonus_amount() == 0
