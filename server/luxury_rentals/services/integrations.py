"""
HTTP clients for the external collaborators of the booking workflow.

Notification, calendar sync and refund providers are best-effort: every call
returns a success flag and never raises into the workflow. When a service URL
is not configured the call is logged and treated as delivered, which keeps
local development and tests free of outbound traffic.
"""

import logging
from typing import Any, Optional

import httpx

from ..core.config import settings
from ..core.observability import metrics_collector
from ..models.booking import Booking

logger = logging.getLogger(__name__)


def booking_payload(booking: Booking) -> dict[str, Any]:
    """Fields collaborators need to describe a booking."""
    return {
        "booking_id": str(booking.id),
        "code": booking.code,
        "item_id": booking.item_id,
        "item_name": booking.item_name,
        "item_type": booking.item_type.value,
        "start_at": booking.start_at.isoformat() + "Z",
        "end_at": booking.end_at.isoformat() + "Z",
        "status": booking.status.value,
        "pickup_location": booking.pickup_location,
        "total": booking.total,
        "currency": booking.currency,
    }


class _HttpCollaborator:
    """Shared POST/DELETE plumbing for the collaborator clients."""

    integration = "collaborator"

    def __init__(self, base_url: Optional[str], timeout: Optional[float] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout or settings.http_timeout_seconds

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Optional[dict]:
        if not self.base_url:
            logger.info(
                f"{self.integration} service not configured; skipping call",
                extra={"integration": self.integration, "path": path},
            )
            return {}

        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, json=payload)
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.TimeoutException:
            logger.warning(
                f"Timeout calling {self.integration} service",
                extra={"integration": self.integration, "url": url},
            )
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"{self.integration} service returned an error",
                extra={
                    "integration": self.integration,
                    "url": url,
                    "status_code": e.response.status_code,
                },
            )
        except httpx.HTTPError as e:
            logger.warning(
                f"Failed to reach {self.integration} service",
                extra={"integration": self.integration, "url": url, "error": str(e)},
            )

        metrics_collector.record_integration_failure(self.integration)
        return None


class NotificationClient(_HttpCollaborator):
    """Fire-and-forget email notifications."""

    integration = "notification"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(base_url if base_url is not None else settings.notification_service_url, timeout)

    async def send(self, notification_type: str, recipient_email: str, template_data: dict[str, Any]) -> bool:
        result = await self._request(
            "POST",
            "/notifications",
            {
                "type": notification_type,
                "recipient": recipient_email,
                "data": template_data,
            },
        )
        return result is not None


class CalendarClient(_HttpCollaborator):
    """Calendar sync for bookings; returns the provider's event id where relevant."""

    integration = "calendar"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(base_url if base_url is not None else settings.calendar_service_url, timeout)

    async def create_event(self, booking: Booking) -> Optional[str]:
        result = await self._request("POST", "/events", booking_payload(booking))
        if result is None:
            return None
        return result.get("event_id") or f"local-{booking.code}"

    async def update_event(self, booking: Booking) -> bool:
        if not booking.calendar_event_id:
            return False
        result = await self._request("PUT", f"/events/{booking.calendar_event_id}", booking_payload(booking))
        return result is not None

    async def delete_event(self, booking: Booking) -> bool:
        if not booking.calendar_event_id:
            return False
        result = await self._request("DELETE", f"/events/{booking.calendar_event_id}")
        return result is not None


class PaymentClient(_HttpCollaborator):
    """Refunds through the payment provider."""

    integration = "payment"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(base_url if base_url is not None else settings.payment_service_url, timeout)

    async def refund(self, booking: Booking, amount: int) -> bool:
        result = await self._request(
            "POST",
            "/refunds",
            {
                "payment_intent_id": booking.payment_intent_id,
                "booking_id": str(booking.id),
                "amount": amount,
                "currency": booking.currency,
            },
        )
        return result is not None
