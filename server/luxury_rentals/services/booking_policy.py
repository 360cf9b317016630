"""
Booking policy tables and pure calculations.

Everything here is free of I/O so the availability engine, the status
workflow and the scheduler share one source of truth for per-type windows,
refund schedules, pricing and the transition table. Money is handled in
integer minor units and computed with Decimal.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Mapping, Optional

from ..models.booking import BookingStatus
from ..models.customer import CustomerTier
from ..models.inventory import DEFAULT_PRICING_TIERS, DEFAULT_SEASONAL_MULTIPLIERS, ItemType

# Per-type windows
BUFFER_TIMES: dict[ItemType, timedelta] = {
    ItemType.CARS: timedelta(hours=2),
    ItemType.YACHTS: timedelta(hours=4),
    ItemType.JETS: timedelta(hours=6),
    ItemType.PROPERTIES: timedelta(hours=12),
}

MINIMUM_NOTICE_HOURS: dict[ItemType, int] = {
    ItemType.CARS: 2,
    ItemType.YACHTS: 24,
    ItemType.JETS: 48,
    ItemType.PROPERTIES: 72,
}

MAXIMUM_ADVANCE_DAYS: dict[ItemType, int] = {
    ItemType.CARS: 365,
    ItemType.YACHTS: 730,
    ItemType.JETS: 365,
    ItemType.PROPERTIES: 1095,
}

CANCELLATION_NOTICE_HOURS: dict[ItemType, int] = {
    ItemType.CARS: 24,
    ItemType.YACHTS: 72,
    ItemType.JETS: 72,
    ItemType.PROPERTIES: 168,
}

# (minimum hours before start, refunded share), most generous first
REFUND_SCHEDULES: dict[ItemType, tuple[tuple[int, Decimal], ...]] = {
    ItemType.CARS: (
        (72, Decimal("1.00")),
        (48, Decimal("0.75")),
        (24, Decimal("0.50")),
        (0, Decimal("0.25")),
    ),
    ItemType.YACHTS: (
        (168, Decimal("1.00")),
        (72, Decimal("0.80")),
        (48, Decimal("0.60")),
        (24, Decimal("0.40")),
        (0, Decimal("0.20")),
    ),
    ItemType.JETS: (
        (168, Decimal("1.00")),
        (72, Decimal("0.75")),
        (48, Decimal("0.50")),
        (24, Decimal("0.30")),
        (0, Decimal("0.15")),
    ),
    ItemType.PROPERTIES: (
        (336, Decimal("1.00")),
        (168, Decimal("0.85")),
        (72, Decimal("0.70")),
        (48, Decimal("0.50")),
        (0, Decimal("0.25")),
    ),
}

REFUND_PROCESSING_FEE_RATE = Decimal("0.05")
SERVICE_FEE_RATE = Decimal("0.05")
TAX_RATE = Decimal("0.08")
NO_SHOW_PENALTY_RATE = Decimal("0.5")

LOYALTY_MULTIPLIERS: dict[CustomerTier, Decimal] = {
    CustomerTier.STANDARD: Decimal("1"),
    CustomerTier.PREMIUM: Decimal("1.5"),
    CustomerTier.VVIP: Decimal("2"),
}

# Lifetime spend thresholds in minor units
PREMIUM_TIER_THRESHOLD = 2_500_000
VVIP_TIER_THRESHOLD = 10_000_000

CANCELLABLE_STATUSES = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.PREPARING,
    BookingStatus.READY_FOR_PICKUP,
})

# Statuses whose bookings occupy the item's calendar
CONFLICTING_STATUSES = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.PREPARING,
    BookingStatus.READY_FOR_PICKUP,
    BookingStatus.IN_PROGRESS,
})

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING_PAYMENT: frozenset({
        BookingStatus.PAYMENT_PROCESSING,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.PAYMENT_PROCESSING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.PAYMENT_FAILED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.PAYMENT_FAILED: frozenset({
        BookingStatus.PENDING_PAYMENT,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.PREPARING,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.PREPARING: frozenset({
        BookingStatus.READY_FOR_PICKUP,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.READY_FOR_PICKUP: frozenset({
        BookingStatus.IN_PROGRESS,
        BookingStatus.NO_SHOW,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.IN_PROGRESS: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
    BookingStatus.REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)


@dataclass(frozen=True)
class StatusTriggers:
    """Offsets that drive automatic transitions, relative to the rental window."""

    preparing_lead: timedelta = timedelta(hours=48)
    ready_lead: timedelta = timedelta(hours=4)
    no_show_grace: timedelta = timedelta(hours=2)
    completion_delay: timedelta = timedelta(hours=24)


AUTOMATIC_TRIGGERS: dict[ItemType, StatusTriggers] = {
    item_type: StatusTriggers() for item_type in ItemType
}


class Season(str, Enum):
    """Pricing seasons keyed by the rental start date."""
    PEAK = "peak"
    HIGH = "high"
    STANDARD = "standard"
    LOW = "low"


@dataclass(frozen=True)
class PriceQuote:
    """Rental price for a date range, in minor units."""

    base_price: int
    days: int
    subtotal: int
    tier_multiplier: float
    seasonal_multiplier: float
    season: Season
    security_deposit: int
    insurance: int
    currency: str

    def as_dict(self) -> dict:
        return {
            "base_price": self.base_price,
            "days": self.days,
            "subtotal": self.subtotal,
            "tier_multiplier": self.tier_multiplier,
            "seasonal_multiplier": self.seasonal_multiplier,
            "season": self.season.value,
            "security_deposit": self.security_deposit,
            "insurance": self.insurance,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class BookingCharges:
    """Full charge breakdown for a new booking, in minor units."""

    quote: PriceQuote
    service_fee: int
    taxes: int
    total: int


@dataclass(frozen=True)
class RefundQuote:
    """Result of applying an item type's refund schedule."""

    percentage: Decimal
    refundable: int
    processing_fee: int
    amount: int


# Transitions

def allowed_transitions(status: BookingStatus) -> frozenset[BookingStatus]:
    """Statuses reachable from `status` in one step."""
    return TRANSITIONS[BookingStatus(status)]


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return BookingStatus(target) in allowed_transitions(current)


def is_terminal(status: BookingStatus) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES


# Intervals

def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap; touching intervals do not overlap."""
    return a_start < b_end and a_end > b_start


def blackout_overlaps(start: datetime, end: datetime, blackout_start: datetime, blackout_end: datetime) -> bool:
    """Blackout intervals are closed: touching a blackout boundary counts."""
    return start <= blackout_end and end >= blackout_start


def buffered_window(start: datetime, end: datetime, item_type: ItemType) -> tuple[datetime, datetime]:
    """Expand a booking by its item type's turnaround buffer on both sides."""
    buffer = BUFFER_TIMES[ItemType(item_type)]
    return start - buffer, end + buffer


def conflicts_with(
    item_type: ItemType,
    existing_start: datetime,
    existing_end: datetime,
    requested_start: datetime,
    requested_end: datetime,
) -> bool:
    """True when a request overlaps an existing booking's buffered window."""
    window_start, window_end = buffered_window(existing_start, existing_end, item_type)
    return intervals_overlap(window_start, window_end, requested_start, requested_end)


def rental_days(start: datetime, end: datetime) -> int:
    """Number of billable days; partial days round up."""
    return max(1, math.ceil((end - start).total_seconds() / 86400))


def validate_booking_window(item_type: ItemType, start: datetime, end: datetime, now: datetime) -> list[str]:
    """Return human-readable problems with a requested rental window."""
    item_type = ItemType(item_type)
    errors = []

    if start >= end:
        errors.append("End date must be after start date")

    hours_until_start = (start - now).total_seconds() / 3600
    minimum_notice = MINIMUM_NOTICE_HOURS[item_type]
    if hours_until_start < minimum_notice:
        errors.append(f"Minimum {minimum_notice} hours notice required for {item_type.value}")

    maximum_advance = MAXIMUM_ADVANCE_DAYS[item_type]
    if hours_until_start / 24 > maximum_advance:
        errors.append(f"Cannot book more than {maximum_advance} days in advance for {item_type.value}")

    return errors


# Money

def _to_minor_units(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def season_for(moment: datetime) -> Season:
    """Peak runs Dec 15 to Jan 15, high is June to August, low is January to March."""
    month, day = moment.month, moment.day
    if (month == 12 and day >= 15) or (month == 1 and day <= 15):
        return Season.PEAK
    if 6 <= month <= 8:
        return Season.HIGH
    if 1 <= month <= 3:
        return Season.LOW
    return Season.STANDARD


def calculate_price(
    base_price: int,
    security_deposit: int,
    insurance_rate: float,
    start: datetime,
    end: datetime,
    tier: CustomerTier = CustomerTier.STANDARD,
    pricing_tiers: Optional[Mapping[str, float]] = None,
    seasonal_multipliers: Optional[Mapping[str, float]] = None,
    currency: str = "USD",
) -> PriceQuote:
    """Price a rental: per-day base price scaled by tier and season, plus insurance."""
    tiers = pricing_tiers or DEFAULT_PRICING_TIERS
    seasons = seasonal_multipliers or DEFAULT_SEASONAL_MULTIPLIERS
    tier_value = CustomerTier(tier).value

    season = season_for(start)
    tier_multiplier = float(tiers.get(tier_value, 1.0))
    seasonal_multiplier = float(seasons.get(season.value, 1.0))
    days = rental_days(start, end)

    daily = Decimal(base_price) * Decimal(str(tier_multiplier)) * Decimal(str(seasonal_multiplier))
    daily_price = _to_minor_units(daily)
    subtotal = daily_price * days
    insurance = _to_minor_units(Decimal(subtotal) * Decimal(str(insurance_rate)))

    return PriceQuote(
        base_price=daily_price,
        days=days,
        subtotal=subtotal,
        tier_multiplier=tier_multiplier,
        seasonal_multiplier=seasonal_multiplier,
        season=season,
        security_deposit=security_deposit,
        insurance=insurance,
        currency=currency,
    )


def calculate_booking_charges(quote: PriceQuote) -> BookingCharges:
    """Add the service fee and taxes; the total includes the refundable deposit."""
    service_fee = _to_minor_units(Decimal(quote.subtotal) * SERVICE_FEE_RATE)
    taxes = _to_minor_units(Decimal(quote.subtotal + service_fee) * TAX_RATE)
    total = quote.subtotal + service_fee + quote.insurance + taxes + quote.security_deposit
    return BookingCharges(quote=quote, service_fee=service_fee, taxes=taxes, total=total)


def refund_percentage(item_type: ItemType, hours_until_start: float) -> Decimal:
    """Share of the refundable amount returned for a cancellation at this notice."""
    for minimum_hours, percentage in REFUND_SCHEDULES[ItemType(item_type)]:
        if hours_until_start >= minimum_hours:
            return percentage
    # Start already passed: the last bracket applies
    return REFUND_SCHEDULES[ItemType(item_type)][-1][1]


def calculate_refund(
    item_type: ItemType,
    total: int,
    security_deposit: int,
    hours_until_start: float,
) -> RefundQuote:
    """
    Refund for a cancellation.

    The deposit is excluded from the refundable amount, a processing fee of
    5% of the refundable amount is deducted, and the result never goes below
    zero. Fractions of a minor unit are dropped.
    """
    refundable = max(0, total - security_deposit)
    percentage = refund_percentage(item_type, hours_until_start)
    fee = Decimal(refundable) * REFUND_PROCESSING_FEE_RATE
    amount = Decimal(refundable) * percentage - fee
    amount = max(Decimal(0), amount).to_integral_value(rounding=ROUND_FLOOR)

    return RefundQuote(
        percentage=percentage,
        refundable=refundable,
        processing_fee=int(fee.to_integral_value(rounding=ROUND_FLOOR)),
        amount=int(amount),
    )


def can_be_cancelled(item_type: ItemType, status: BookingStatus, hours_until_start: float) -> bool:
    """Customers may cancel confirmed bookings given enough notice for the item type."""
    if BookingStatus(status) not in CANCELLABLE_STATUSES:
        return False
    return hours_until_start >= CANCELLATION_NOTICE_HOURS[ItemType(item_type)]


def no_show_penalty(security_deposit: int) -> int:
    return _to_minor_units(Decimal(security_deposit) * NO_SHOW_PENALTY_RATE)


def loyalty_points_for(amount: int, tier: CustomerTier) -> int:
    """Points are earned per whole currency unit, scaled by the customer's tier."""
    points = Decimal(amount) / Decimal(100) * LOYALTY_MULTIPLIERS[CustomerTier(tier)]
    return int(points.to_integral_value(rounding=ROUND_FLOOR))


def tier_for_spend(total_spent: int) -> CustomerTier:
    if total_spent >= VVIP_TIER_THRESHOLD:
        return CustomerTier.VVIP
    if total_spent >= PREMIUM_TIER_THRESHOLD:
        return CustomerTier.PREMIUM
    return CustomerTier.STANDARD
