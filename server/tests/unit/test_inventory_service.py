"""Unit tests for the inventory service."""

from datetime import timedelta

import pytest

from luxury_rentals.core.exceptions import ConflictError, NotFoundError, ValidationError
from luxury_rentals.models import ItemStatus, ItemType
from luxury_rentals.schemas.availability import AvailabilityCode
from luxury_rentals.schemas.common import Money
from luxury_rentals.schemas.inventory import AddBlackoutRequest, CreateInventoryItemRequest, UpdateItemStatusRequest
from luxury_rentals.services.availability_service import AvailabilityService
from luxury_rentals.services.inventory_service import InventoryService

from conftest import FIXED_NOW, fixed_clock

START = FIXED_NOW + timedelta(days=10)


@pytest.fixture
def inventory(test_session):
    return InventoryService(test_session, clock=fixed_clock)


def create_request(**overrides) -> CreateInventoryItemRequest:
    fields = {
        "item_id": " yac-sun-001 ",
        "name": "Sunseeker 95",
        "item_type": ItemType.YACHTS,
        "primary_location": "monaco",
        "minimum_rental_days": 2,
        "base_price": Money(amount=900000, currency="EUR"),
        "security_deposit": Money(amount=3000000, currency="EUR"),
        "pricing_tiers": {"standard": 1.0, "premium": 1.2, "vvip": 1.5},
    }
    fields.update(overrides)
    return CreateInventoryItemRequest(**fields)


@pytest.mark.asyncio
async def test_create_item(inventory):
    """Test registering an item; ids are normalized to upper case."""
    item = await inventory.create_item(create_request(), actor="staff-1")

    assert item.item_id == "YAC-SUN-001"
    assert item.currency == "EUR"
    assert item.base_price == 900000
    assert item.pricing_tiers["premium"] == 1.2
    assert item.seasonal_multipliers["peak"] == 1.5
    assert item.status == ItemStatus.AVAILABLE
    assert item.is_active is True
    assert item.blackout_periods == []


@pytest.mark.asyncio
async def test_create_duplicate_item(inventory):
    await inventory.create_item(create_request(), actor="staff-1")

    with pytest.raises(ConflictError):
        await inventory.create_item(create_request(), actor="staff-1")


def test_create_request_rejects_mixed_currencies():
    with pytest.raises(ValueError):
        create_request(security_deposit=Money(amount=1, currency="USD"))


@pytest.mark.asyncio
async def test_get_unknown_item(inventory):
    with pytest.raises(NotFoundError):
        await inventory.get_item("NOPE-1")


@pytest.mark.asyncio
async def test_update_item_status_blocks_availability(inventory, test_session, make_item):
    await make_item()

    item = await inventory.update_item_status(
        UpdateItemStatusRequest(item_id="car-001", status=ItemStatus.MAINTENANCE, reason="brake service"),
        actor="staff-1",
    )

    assert item.status == ItemStatus.MAINTENANCE
    assert item.updated_at == FIXED_NOW
    result = await AvailabilityService(test_session, clock=fixed_clock).check_availability(
        "CAR-001", START, START + timedelta(days=1)
    )
    assert result.code == AvailabilityCode.ITEM_STATUS_UNAVAILABLE


@pytest.mark.asyncio
async def test_deactivate_item(inventory, make_item):
    await make_item()

    item = await inventory.update_item_status(
        UpdateItemStatusRequest(item_id="CAR-001", is_active=False, reason="sold"),
        actor="staff-1",
    )

    assert item.is_active is False
    assert item.status == ItemStatus.AVAILABLE


@pytest.mark.asyncio
async def test_update_item_status_requires_a_change(inventory, make_item):
    await make_item()

    with pytest.raises(ValidationError):
        await inventory.update_item_status(UpdateItemStatusRequest(item_id="CAR-001", reason="noop"), actor="staff-1")


@pytest.mark.asyncio
async def test_add_blackout(inventory, test_session, make_item):
    await make_item()

    item = await inventory.add_blackout(
        AddBlackoutRequest(
            item_id="CAR-001",
            start_date=START,
            end_date=START + timedelta(days=2),
            reason="track day",
        ),
        actor="staff-1",
    )

    assert [(b.start_at, b.reason) for b in item.blackout_periods] == [(START, "track day")]
    result = await AvailabilityService(test_session, clock=fixed_clock).check_availability(
        "CAR-001", START + timedelta(days=1), START + timedelta(days=3)
    )
    assert result.code == AvailabilityCode.BLACKOUT_PERIOD
    assert result.blackout_reason == "track day"


def test_blackout_request_requires_positive_range():
    with pytest.raises(ValueError):
        AddBlackoutRequest(item_id="CAR-001", start_date=START, end_date=START)
