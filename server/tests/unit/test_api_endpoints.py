"""Integration tests for API endpoints."""

from datetime import timedelta

import pytest

from luxury_rentals.core.timeutils import isoformat_z, utcnow

from conftest import make_token

START = (utcnow() + timedelta(days=30)).replace(minute=0, second=0, microsecond=0)
END = START + timedelta(days=3)

GUEST = {"first_name": "Grace", "last_name": "Hopper", "email": "grace@example.com"}

YACHT = {
    "item_id": "yac-sun-001",
    "name": "Sunseeker 95",
    "item_type": "yachts",
    "primary_location": "monaco",
    "minimum_rental_days": 2,
    "base_price": {"amount": 900000, "currency": "EUR"},
    "security_deposit": {"amount": 3000000, "currency": "EUR"},
}


def window(start=START, end=END) -> dict:
    return {"start_date": isoformat_z(start), "end_date": isoformat_z(end)}


def bearer(subject: str, roles=None) -> dict:
    return {"Authorization": f"Bearer {make_token(subject, roles=roles)}"}


async def create_guest_booking(test_client, **overrides) -> dict:
    body = {"item_id": "CAR-001", **window(), "guest": GUEST, **overrides}
    response = await test_client.post("/v1/booking/create", json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def confirm(test_client, booking_id: str, headers: dict, **extra) -> dict:
    """Walk a pending booking through payment to confirmed."""
    for status in ("payment-processing", "confirmed"):
        response = await test_client.post(
            "/v1/booking/status/update",
            json={"booking_id": booking_id, "status": status, **extra},
            headers=headers,
        )
        assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
async def test_check_availability_endpoint(test_client, make_item):
    """Test an available item comes back with a price quote."""
    await make_item()

    response = await test_client.post("/v1/availability/check", json={"item_id": "car-001", **window()})

    assert response.status_code == 200
    data = response.json()
    assert data["available"] is True
    assert data["item_id"] == "CAR-001"
    assert data["item"]["name"] == "Lamborghini Huracan"
    assert data["pricing"]["days"] == 3
    assert data["pricing"]["security_deposit"] == 500000


@pytest.mark.asyncio
async def test_check_availability_reports_reason_codes(test_client, make_item):
    """Unavailability is a normal response carrying a reason code."""
    await make_item()

    missing = await test_client.post("/v1/availability/check", json={"item_id": "CAR-404", **window()})
    bad_dates = await test_client.post(
        "/v1/availability/check",
        json={"item_id": "CAR-001", "start_date": "next tuesday", "end_date": isoformat_z(END)},
    )

    assert missing.status_code == 200
    assert missing.json()["code"] == "ITEM_NOT_FOUND"
    assert bad_dates.status_code == 200
    assert bad_dates.json()["code"] == "INVALID_DATES"
    assert bad_dates.json()["available"] is False


@pytest.mark.asyncio
async def test_check_multiple_endpoint(test_client, make_item):
    await make_item()

    response = await test_client.post(
        "/v1/availability/check-multiple",
        json={"item_ids": ["CAR-001", "CAR-404"], **window()},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["summary"] == {"total": 2, "available": 1, "unavailable": 1}
    assert [r["item_id"] for r in data["available"]] == ["CAR-001"]


@pytest.mark.asyncio
async def test_check_multiple_requires_items(test_client):
    response = await test_client.post("/v1/availability/check-multiple", json={"item_ids": [], **window()})

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    assert data["code"] == "VALIDATION_ERROR"
    assert "violations" in data


@pytest.mark.asyncio
async def test_hold_endpoint_blocks_other_requests(test_client, make_item):
    await make_item()

    response = await test_client.post(
        "/v1/availability/hold",
        json={"item_id": "CAR-001", **window(), "requester_id": "session-42"},
    )

    assert response.status_code == 201
    hold = response.json()
    assert hold["requester_id"] == "session-42"
    assert hold["item_id"] == "CAR-001"

    check = await test_client.post("/v1/availability/check", json={"item_id": "CAR-001", **window()})
    assert check.json()["code"] == "BOOKING_CONFLICT"
    assert check.json()["conflicts"][0]["temporary"] is True

    second = await test_client.post(
        "/v1/availability/hold",
        json={"item_id": "CAR-001", **window(), "requester_id": "session-43"},
    )
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_hold_duration_is_bounded(test_client):
    response = await test_client.post(
        "/v1/availability/hold",
        json={"item_id": "CAR-001", **window(), "requester_id": "session-42", "duration_minutes": 60},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_calendar_endpoint(test_client, make_item, staff_headers, dispatcher):
    await make_item()
    booking = await create_guest_booking(test_client)
    await confirm(test_client, booking["id"], staff_headers)
    await dispatcher.drain()

    response = await test_client.post(
        "/v1/availability/calendar",
        json={"item_id": "CAR-001", **window(START - timedelta(days=1), END + timedelta(days=1))},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["item_name"] == "Lamborghini Huracan"
    assert [b["code"] for b in data["bookings"]] == [booking["code"]]


@pytest.mark.asyncio
async def test_create_guest_booking_endpoint(test_client, make_item):
    """Test an anonymous booking with guest details."""
    await make_item()

    data = await create_guest_booking(test_client)

    assert data["code"].startswith("MIDAS-")
    assert data["status"] == "pending-payment"
    assert data["customer_id"] is None
    assert data["guest_email"] == "grace@example.com"
    pricing = data["pricing"]
    assert pricing["rental_days"] == 3
    assert pricing["total"] == (
        pricing["subtotal"] + pricing["service_fee"] + pricing["insurance"]
        + pricing["taxes"] + pricing["security_deposit"]
    )
    assert data["payment"] == {"status": "pending", "paid_amount": 0, "refunded_amount": 0}


@pytest.mark.asyncio
async def test_create_booking_without_guest_or_token(test_client, make_item):
    await make_item()

    response = await test_client.post("/v1/booking/create", json={"item_id": "CAR-001", **window()})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_create_booking_invalid_range(test_client):
    response = await test_client.post(
        "/v1/booking/create",
        json={"item_id": "CAR-001", **window(END, START), "guest": GUEST},
    )

    assert response.status_code == 422
    assert "violations" in response.json()


@pytest.mark.asyncio
async def test_double_booking_is_rejected(test_client, make_item, staff_headers, dispatcher):
    await make_item()
    first = await create_guest_booking(test_client)
    await confirm(test_client, first["id"], staff_headers)
    await dispatcher.drain()

    response = await test_client.post(
        "/v1/booking/create",
        json={"item_id": "CAR-001", **window(START + timedelta(days=1), END + timedelta(days=1)), "guest": GUEST},
    )

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_customer_booking_and_cancellation(
    test_client, make_item, make_customer, staff_headers, dispatcher
):
    """Test a signed-in customer books on their account and cancels it."""
    await make_item()
    customer = await make_customer()
    headers = bearer(str(customer.id))

    created = await test_client.post(
        "/v1/booking/create", json={"item_id": "CAR-001", **window()}, headers=headers
    )
    assert created.status_code == 201
    booking = created.json()
    assert booking["customer_id"] == str(customer.id)

    fetched = await test_client.post("/v1/booking/get", json={"booking_id": booking["id"]})
    assert fetched.status_code == 200
    assert fetched.json()["code"] == booking["code"]

    await confirm(test_client, booking["id"], staff_headers)
    await dispatcher.drain()

    stranger = await test_client.post(
        "/v1/booking/cancel", json={"booking_id": booking["id"]}, headers=bearer("someone-else")
    )
    assert stranger.status_code == 403

    cancelled = await test_client.post(
        "/v1/booking/cancel", json={"booking_id": booking["id"], "reason": "Trip moved"}, headers=headers
    )
    await dispatcher.drain()

    assert cancelled.status_code == 200
    data = cancelled.json()
    assert data["status"] == "cancelled"
    assert data["cancellation_reason"] == "Trip moved"
    assert data["refund_amount"] > 0


@pytest.mark.asyncio
async def test_cancel_requires_auth(test_client):
    response = await test_client.post("/v1/booking/cancel", json={"booking_id": "anything"})

    assert response.status_code == 401
    data = response.json()
    assert data["status"] == 401
    assert "authentication" in data["title"].lower()
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_get_unknown_booking(test_client):
    response = await test_client.post("/v1/booking/get", json={"booking_id": "not-a-booking"})

    assert response.status_code == 404
    assert response.json()["resource_type"] == "booking"


@pytest.mark.asyncio
async def test_status_update_and_history(test_client, make_item, staff_headers, dispatcher, notifier):
    await make_item()
    booking = await create_guest_booking(test_client)
    processing = await test_client.post(
        "/v1/booking/status/update",
        json={"booking_id": booking["id"], "status": "payment-processing"},
        headers=staff_headers,
    )
    assert processing.status_code == 200

    response = await test_client.post(
        "/v1/booking/status/update",
        json={
            "booking_id": booking["id"],
            "status": "confirmed",
            "reason": "Payment captured",
            "metadata": {"payment_status": "completed", "paid_amount": booking["pricing"]["total"]},
        },
        headers=staff_headers,
    )
    await dispatcher.drain()

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["payment"]["status"] == "completed"
    assert notifier.of_type("booking_confirmed")

    history = await test_client.post("/v1/booking/status/history", json={"booking_id": booking["id"]})
    assert history.status_code == 200
    entries = history.json()["history"]
    assert [e["status"] for e in entries] == ["pending-payment", "payment-processing", "confirmed"]
    assert entries[2]["actor"] == "staff-1"
    assert entries[2]["reason"] == "Payment captured"


@pytest.mark.asyncio
async def test_invalid_status_transition_endpoint(test_client, make_item, staff_headers):
    await make_item()
    booking = await create_guest_booking(test_client)

    response = await test_client.post(
        "/v1/booking/status/update",
        json={"booking_id": booking["id"], "status": "completed"},
        headers=staff_headers,
    )

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "INVALID_TRANSITION"
    assert data["current_status"] == "pending-payment"
    assert data["allowed_transitions"] == ["cancelled", "payment-processing"]


@pytest.mark.asyncio
async def test_status_update_requires_staff(test_client):
    response = await test_client.post(
        "/v1/booking/status/update",
        json={"booking_id": "anything", "status": "confirmed"},
        headers=bearer("customer-1"),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_inventory_endpoints(test_client, staff_headers):
    """Test registering an item, blacking it out and reading it back."""
    created = await test_client.post("/v1/inventory/create", json=YACHT, headers=staff_headers)
    assert created.status_code == 201
    assert created.json()["item_id"] == "YAC-SUN-001"

    duplicate = await test_client.post("/v1/inventory/create", json=YACHT, headers=staff_headers)
    assert duplicate.status_code == 409

    blackout = await test_client.post(
        "/v1/inventory/blackout/add",
        json={"item_id": "YAC-SUN-001", **window(), "reason": "hull cleaning"},
        headers=staff_headers,
    )
    assert blackout.status_code == 200
    assert [b["reason"] for b in blackout.json()["blackout_periods"]] == ["hull cleaning"]

    fetched = await test_client.post("/v1/inventory/get", json={"item_id": "YAC-SUN-001"})
    assert fetched.status_code == 200
    assert fetched.json()["base_price"] == {"amount": 900000, "currency": "EUR"}


@pytest.mark.asyncio
async def test_inventory_create_requires_staff(test_client):
    response = await test_client.post("/v1/inventory/create", json=YACHT, headers=bearer("customer-1"))
    anonymous = await test_client.post("/v1/inventory/create", json=YACHT)

    assert response.status_code == 403
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_inventory_status_update_endpoint(test_client, make_item, staff_headers):
    await make_item()

    response = await test_client.post(
        "/v1/inventory/status/update",
        json={"item_id": "CAR-001", "status": "maintenance", "reason": "brake service"},
        headers=staff_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "maintenance"


@pytest.mark.asyncio
async def test_scheduler_run_endpoint(test_client, staff_headers):
    response = await test_client.post("/v1/scheduler/run", headers=staff_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["skipped"] is False
    assert data["status_updates"] == {"processed": 0, "failed": 0, "errors": []}
    assert data["reminders"] == {"sent": 0, "failed": 0}
    assert data["cleanup"] == {"expired_reservations": 0}


@pytest.mark.asyncio
async def test_scheduler_run_requires_staff(test_client):
    response = await test_client.post("/v1/scheduler/run", headers=bearer("customer-1"))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(test_client):
    response = await test_client.post(
        "/v1/scheduler/run", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Test the Prometheus metrics endpoint."""
    response = await test_client.get("/metrics")

    assert response.status_code == 200
