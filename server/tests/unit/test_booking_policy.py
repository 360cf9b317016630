"""Unit tests for the pure booking policy calculations."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from luxury_rentals.models import BookingStatus, CustomerTier, ItemType
from luxury_rentals.services.booking_policy import (
    Season,
    blackout_overlaps,
    calculate_booking_charges,
    calculate_price,
    calculate_refund,
    can_be_cancelled,
    conflicts_with,
    loyalty_points_for,
    no_show_penalty,
    refund_percentage,
    rental_days,
    season_for,
    tier_for_spend,
    validate_booking_window,
)

NOW = datetime(2026, 5, 4, 12, 0, 0)
START = datetime(2026, 5, 14, 10, 0, 0)


@pytest.mark.parametrize(
    "moment, season",
    [
        (datetime(2026, 12, 20), Season.PEAK),
        (datetime(2027, 1, 10), Season.PEAK),
        (datetime(2027, 1, 16), Season.LOW),
        (datetime(2026, 3, 31), Season.LOW),
        (datetime(2026, 7, 1), Season.HIGH),
        (datetime(2026, 12, 14), Season.STANDARD),
        (datetime(2026, 4, 1), Season.STANDARD),
    ],
)
def test_season_for(moment, season):
    assert season_for(moment) == season


def test_rental_days_rounds_partial_days_up():
    assert rental_days(START, START + timedelta(minutes=1)) == 1
    assert rental_days(START, START + timedelta(days=2)) == 2
    assert rental_days(START, START + timedelta(days=2, seconds=1)) == 3


def test_calculate_price_standard_season():
    """Per-day price times days, with insurance on the subtotal."""
    quote = calculate_price(100000, 500000, 0.15, START, START + timedelta(days=3))

    assert quote.season == Season.STANDARD
    assert quote.base_price == 100000
    assert quote.days == 3
    assert quote.subtotal == 300000
    assert quote.insurance == 45000
    assert quote.security_deposit == 500000
    assert quote.currency == "USD"


def test_calculate_price_applies_tier_and_season():
    july = datetime(2026, 7, 10, 10, 0, 0)
    quote = calculate_price(100000, 500000, 0.15, july, july + timedelta(days=3), tier=CustomerTier.PREMIUM)

    assert quote.tier_multiplier == 1.3
    assert quote.seasonal_multiplier == 1.25
    assert quote.base_price == 162500
    assert quote.subtotal == 487500


def test_calculate_price_uses_item_overrides():
    quote = calculate_price(
        100000,
        0,
        0.0,
        START,
        START + timedelta(days=1),
        tier=CustomerTier.VVIP,
        pricing_tiers={"vvip": 2.0},
        seasonal_multipliers={"standard": 1.1},
    )
    assert quote.base_price == 220000
    assert quote.insurance == 0


def test_booking_charges_include_deposit():
    quote = calculate_price(100000, 500000, 0.15, START, START + timedelta(days=3))
    charges = calculate_booking_charges(quote)

    assert charges.service_fee == 15000
    assert charges.taxes == 25200
    assert charges.total == 300000 + 15000 + 45000 + 25200 + 500000


@pytest.mark.parametrize(
    "hours, amount",
    [
        (100, 365940),
        (50, 269640),
        (30, 173340),
        (10, 77040),
    ],
)
def test_car_refund_schedule(hours, amount):
    """Refundable amount excludes the deposit and a 5% processing fee is deducted."""
    refund = calculate_refund(ItemType.CARS, 885200, 500000, hours)

    assert refund.refundable == 385200
    assert refund.processing_fee == 19260
    assert refund.amount == amount


def test_refund_thirty_hours_out():
    """$1000 total with a $100 deposit, 30 hours before a car pickup."""
    refund = calculate_refund(ItemType.CARS, 100000, 10000, 30)

    assert refund.percentage == Decimal("0.50")
    assert refund.amount == 40500


def test_refund_never_negative():
    refund = calculate_refund(ItemType.CARS, 100000, 500000, 100)
    assert refund.refundable == 0
    assert refund.amount == 0


def test_refund_percentage_after_start_uses_last_bracket():
    assert refund_percentage(ItemType.YACHTS, 30) == Decimal("0.40")
    assert refund_percentage(ItemType.YACHTS, -5) == Decimal("0.20")
    assert refund_percentage(ItemType.PROPERTIES, 400) == Decimal("1.00")


def test_can_be_cancelled_requires_notice():
    assert can_be_cancelled(ItemType.CARS, BookingStatus.CONFIRMED, 24)
    assert not can_be_cancelled(ItemType.CARS, BookingStatus.CONFIRMED, 23.9)
    assert not can_be_cancelled(ItemType.PROPERTIES, BookingStatus.CONFIRMED, 100)
    assert can_be_cancelled(ItemType.PROPERTIES, BookingStatus.READY_FOR_PICKUP, 168)


def test_can_be_cancelled_rejects_other_statuses():
    assert not can_be_cancelled(ItemType.CARS, BookingStatus.IN_PROGRESS, 500)
    assert not can_be_cancelled(ItemType.CARS, BookingStatus.PENDING_PAYMENT, 500)
    assert not can_be_cancelled(ItemType.CARS, BookingStatus.COMPLETED, 500)


def test_no_show_penalty_is_half_the_deposit():
    assert no_show_penalty(500000) == 250000
    assert no_show_penalty(333) == 167


def test_loyalty_points_scale_with_tier():
    assert loyalty_points_for(885200, CustomerTier.STANDARD) == 8852
    assert loyalty_points_for(885200, CustomerTier.PREMIUM) == 13278
    assert loyalty_points_for(885200, CustomerTier.VVIP) == 17704
    assert loyalty_points_for(99, CustomerTier.STANDARD) == 0


def test_tier_for_spend_thresholds():
    assert tier_for_spend(2_499_999) == CustomerTier.STANDARD
    assert tier_for_spend(2_500_000) == CustomerTier.PREMIUM
    assert tier_for_spend(10_000_000) == CustomerTier.VVIP


def test_validate_booking_window_minimum_notice():
    errors = validate_booking_window(ItemType.CARS, NOW + timedelta(hours=1), NOW + timedelta(days=1), NOW)
    assert errors == ["Minimum 2 hours notice required for cars"]

    assert validate_booking_window(ItemType.YACHTS, NOW + timedelta(hours=100), NOW + timedelta(days=8), NOW) == []


def test_validate_booking_window_maximum_advance():
    start = NOW + timedelta(days=400)
    errors = validate_booking_window(ItemType.JETS, start, start + timedelta(days=1), NOW)
    assert errors == ["Cannot book more than 365 days in advance for jets"]

    # Properties may be booked three years ahead
    assert validate_booking_window(ItemType.PROPERTIES, start, start + timedelta(days=3), NOW) == []


def test_validate_booking_window_reports_every_problem():
    start = NOW + timedelta(minutes=30)
    errors = validate_booking_window(ItemType.CARS, start, start, NOW)
    assert len(errors) == 2
    assert errors[0] == "End date must be after start date"


def test_buffered_conflicts():
    """A car booked 10:00-12:00 blocks 08:00-14:00 exclusive."""
    existing_start = datetime(2026, 6, 1, 10, 0)
    existing_end = datetime(2026, 6, 1, 12, 0)

    def blocked(start_hour, start_minute, end_hour):
        return conflicts_with(
            ItemType.CARS,
            existing_start,
            existing_end,
            datetime(2026, 6, 1, start_hour, start_minute),
            datetime(2026, 6, 1, end_hour, 0),
        )

    assert not blocked(14, 0, 15)
    assert blocked(13, 59, 15)
    assert not blocked(6, 0, 8)
    assert blocked(6, 0, 9)


def test_blackout_boundaries_are_inclusive():
    blackout_start = datetime(2026, 6, 10)
    blackout_end = datetime(2026, 6, 12)

    assert blackout_overlaps(datetime(2026, 6, 12), datetime(2026, 6, 14), blackout_start, blackout_end)
    assert blackout_overlaps(datetime(2026, 6, 8), datetime(2026, 6, 10), blackout_start, blackout_end)
    assert not blackout_overlaps(datetime(2026, 6, 12, 0, 1), datetime(2026, 6, 14), blackout_start, blackout_end)
