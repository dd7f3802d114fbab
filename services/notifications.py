"""
Notification Outbox
Version: 1.1

Best-effort client e-mails (new booking, status change, invoice).

The core calls Notifier methods and awaits them, but a Notifier never raises:
every failure is logged and counted, and the primary operation carries on.
Delivery happens behind an Outbox:
- RedisOutbox: queued on a Redis list, delivered by worker.py
- InlineOutbox: delivered from a background task in this process
- LogOutbox: recorded and logged only (development, tests)

DEPENDS ON: sanitizer.py, metrics.py (settings service is injected)
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

import httpx

from services.errors import SideEffectFailure
from services.metrics import record_notification
from services.sanitizer import mask_email

logger = logging.getLogger(__name__)

QUEUE_NOTIFICATIONS = "notifications_outbound"
QUEUE_DLQ = "dlq:notifications"


class NotificationKind(str, Enum):
    NEW_BOOKING = "NEW_BOOKING"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    INVOICE_GENERATED = "INVOICE_GENERATED"


@dataclass
class NotificationEvent:
    """Payload understood by the send-email function."""
    kind: NotificationKind
    recipient: str
    name: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "recipient": self.recipient,
            "name": self.name,
            "data": self.data,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "NotificationEvent":
        return cls(
            kind=NotificationKind(payload["type"]),
            recipient=payload["recipient"],
            name=payload.get("name", ""),
            data=payload.get("data") or {},
        )


def short_reference(entity_id: str) -> str:
    return (entity_id or "")[:8].upper()


# =============================================================================
# DELIVERY
# =============================================================================

class EmailSender:
    """Invokes the managed platform's e-mail function."""

    DEFAULT_TIMEOUT = 15.0

    def __init__(
        self,
        base_url: str,
        service_key: Optional[str] = None,
        function_name: str = "send-email",
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.url = f"{base_url.rstrip('/')}/functions/v1/{function_name}"
        self.service_key = service_key
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or self.DEFAULT_TIMEOUT, connect=5.0)
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.service_key:
            headers["Authorization"] = f"Bearer {self.service_key}"
            headers["apikey"] = self.service_key
        return headers

    async def send(self, event: NotificationEvent) -> bool:
        """Returns False instead of raising on any failure."""
        try:
            response = await self.client.post(self.url, json=event.to_payload(), headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"E-mail function unreachable ({event.kind.value}): {e}")
            record_notification(event.kind.value, sent=False)
            return False

        if response.status_code == 404:
            logger.warning("E-mail function not deployed, notification dropped")
            record_notification(event.kind.value, sent=False)
            return False
        if response.status_code >= 400:
            logger.error(f"E-mail function error {response.status_code}: {response.text[:200]}")
            record_notification(event.kind.value, sent=False)
            return False

        logger.info(f"Sent {event.kind.value} to {mask_email(event.recipient)}")
        record_notification(event.kind.value, sent=True)
        return True

    async def close(self):
        await self.client.aclose()


class Outbox(ABC):

    @abstractmethod
    async def put(self, event: NotificationEvent) -> None:
        ...

    async def close(self) -> None:
        return None


class RedisOutbox(Outbox):
    """Redis list consumed by worker.py."""

    def __init__(self, redis_client):
        self.redis = redis_client

    async def put(self, event: NotificationEvent) -> None:
        await self.redis.rpush(QUEUE_NOTIFICATIONS, json.dumps(event.to_payload()))
        logger.debug(f"Queued {event.kind.value} for {mask_email(event.recipient)}")

    async def take(self, timeout: int = 1) -> Optional[NotificationEvent]:
        try:
            result = await self.redis.blpop(QUEUE_NOTIFICATIONS, timeout=timeout)
            if not result:
                return None
            _, data = result
            return NotificationEvent.from_payload(json.loads(data))
        except (ValueError, KeyError) as e:
            logger.error(f"Dropping malformed notification: {e}")
            return None

    async def store_dlq(self, event: NotificationEvent, error: str) -> None:
        try:
            entry = {"original": event.to_payload(), "error": str(error)}
            await self.redis.rpush(QUEUE_DLQ, json.dumps(entry))
            logger.warning(f"Notification stored in DLQ: {error[:100]}")
        except Exception as e:
            logger.error(f"DLQ store failed: {e}")


class InlineOutbox(Outbox):
    """Sends from a background task; callers never wait for delivery."""

    def __init__(self, sender: EmailSender):
        self.sender = sender
        self._tasks: Set[asyncio.Task] = set()

    async def put(self, event: NotificationEvent) -> None:
        task = asyncio.create_task(self.sender.send(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.sender.close()


class LogOutbox(Outbox):
    """Keeps events in memory and logs them."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    async def put(self, event: NotificationEvent) -> None:
        self.events.append(event)
        logger.info(f"Notification {event.kind.value} for {mask_email(event.recipient)}: {event.data}")


# =============================================================================
# NOTIFIER
# =============================================================================

class Notifier:
    """
    Builds notification events and hands them to the outbox.

    Every public method swallows failures (SideEffectFailure is logged,
    never raised) so bookings and invoices are never rolled back by e-mail.
    """

    def __init__(self, outbox: Outbox, settings_service, portal_url: str = ""):
        self.outbox = outbox
        self.settings_service = settings_service
        self.portal_url = portal_url.rstrip("/")

    async def _dispatch(self, event: NotificationEvent) -> bool:
        try:
            await self.outbox.put(event)
            return True
        except Exception as e:
            failure = SideEffectFailure(f"Could not queue {event.kind.value}: {e}")
            logger.error(failure.message)
            record_notification(event.kind.value, sent=False)
            return False

    async def _enabled(self):
        settings = await self.settings_service.get()
        return settings if settings.enable_email_notifications else None

    async def booking_created(self, booking) -> None:
        try:
            settings = await self._enabled()
            if settings is None:
                return

            data = {
                "reference": short_reference(booking.id),
                "service": booking.service_type.value,
                "date": booking.pickup_time.strftime("%d/%m/%Y"),
                "time": booking.pickup_time.strftime("%H:%M"),
                "pickup": booking.pickup_location,
                "dropoff": booking.dropoff_location,
                "pax": booking.pax,
                "amount": booking.amount,
            }

            if booking.email:
                await self._dispatch(NotificationEvent(
                    NotificationKind.NEW_BOOKING, booking.email, booking.client_name, data
                ))

            if settings.email:
                await self._dispatch(NotificationEvent(
                    NotificationKind.NEW_BOOKING, settings.email,
                    f"{booking.client_name} (Admin Copy)", dict(data)
                ))
        except Exception as e:
            logger.error(f"Booking confirmation e-mail failed: {e}")

    async def booking_status_changed(self, booking) -> None:
        kinds = {
            "CONFIRMED": NotificationKind.BOOKING_CONFIRMED,
            "CANCELLED": NotificationKind.BOOKING_CANCELLED,
        }
        try:
            kind = kinds.get(booking.status.value)
            if kind is None or not booking.email:
                return
            if await self._enabled() is None:
                return

            await self._dispatch(NotificationEvent(kind, booking.email, booking.client_name, {
                "reference": short_reference(booking.id),
                "status": booking.status.value,
            }))
        except Exception as e:
            logger.error(f"Status update e-mail failed: {e}")

    async def invoice_generated(self, invoice, client_email: Optional[str]) -> None:
        try:
            if not client_email:
                return
            if await self._enabled() is None:
                return

            await self._dispatch(NotificationEvent(
                NotificationKind.INVOICE_GENERATED, client_email, invoice.client_name or "", {
                    "invoiceNumber": short_reference(invoice.id),
                    "amount": invoice.total,
                    "dueDate": invoice.date.strftime("%d/%m/%Y"),
                    "link": f"{self.portal_url}/#/portal",
                }
            ))
        except Exception as e:
            logger.error(f"Invoice e-mail failed: {e}")
