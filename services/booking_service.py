"""
Booking Service
Version: 1.2

Booking lifecycle: create, status workflow, detail edits, delete.

The status workflow is free (any status may be selected from any other);
every change is recorded in the booking history, most recent first.
Side effects (e-mail, auto-invoice) are best-effort and never fail the
primary write.

DEPENDS ON: data_store.py, settings_service.py, notifications.py, finance_service.py
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from models import new_id
from schemas import (
    Booking,
    BookingHistoryEntry,
    BookingInput,
    BookingOption,
    BookingPatch,
    BookingStats,
    BookingStatus,
    CurrencyCode,
    HistoryAction,
    ServiceType,
)
from services.data_store import DataStore, Order, any_of, eq, ilike
from services.errors import NotFoundError, ValidationError
from services.metrics import BOOKING_STATUS_CHANGES, BOOKINGS_CREATED
from services.sanitizer import normalize_email, strip_tags

logger = logging.getLogger(__name__)

TABLE = "bookings"
REFERENCE_PREFIX = "KIT-"


def format_reference(booking_id: Optional[str]) -> str:
    """
    Display reference derived from the first 8 characters of the id.

    >>> format_reference("3f2a9c1e-0000-0000-0000-000000000000")
    'KIT-3F2A9C1E'
    """
    if not booking_id:
        return "REF-ERROR"
    return f"{REFERENCE_PREFIX}{booking_id[:8].upper()}"


def booking_from_row(row: Dict[str, Any]) -> Booking:
    return Booking.model_validate(row)


def history_to_json(entries: List[BookingHistoryEntry]) -> List[Dict[str, Any]]:
    return [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in entries]


def _as_uuid(value: Optional[str]) -> Optional[str]:
    """Actor ids that are not profile UUIDs are not stored as client_id."""
    if not value:
        return None
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        return None


def _format_amount(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else str(value)


class BookingService:
    """Reservation lifecycle."""

    def __init__(self, store: DataStore, settings_service, notifier=None, finance_service=None):
        self.store = store
        self.settings_service = settings_service
        self.notifier = notifier
        self.finance_service = finance_service

    # =========================================================================
    # READ
    # =========================================================================

    async def get(self, booking_id: str) -> Booking:
        row = await self.store.get(TABLE, booking_id)
        if row is None:
            raise NotFoundError("Booking", booking_id)
        return booking_from_row(row)

    async def list(self, page: int = 1, limit: int = 10) -> Tuple[List[Booking], int]:
        rows, count = await self.store.select(
            TABLE, order=Order("pickup_time", descending=True), page=page, limit=limit
        )
        return [booking_from_row(r) for r in rows], count

    async def options(self) -> List[BookingOption]:
        """All bookings, newest pickup first, for invoice and expense pickers."""
        rows, _ = await self.store.select(TABLE, order=Order("pickup_time", descending=True))
        return [BookingOption.model_validate(r) for r in rows]

    async def stats(self) -> BookingStats:
        _, pending = await self.store.select(TABLE, [eq("status", BookingStatus.PENDING)], limit=1)
        _, confirmed = await self.store.select(TABLE, [eq("status", BookingStatus.CONFIRMED)], limit=1)
        return BookingStats(pending=pending, confirmed=confirmed)

    async def list_for_client(self, client_id: Optional[str], email: Optional[str]) -> List[Booking]:
        """Bookings owned by the profile id or made with the same e-mail."""
        conditions = []
        client_uuid = _as_uuid(client_id)
        if client_uuid:
            conditions.append(eq("client_id", client_uuid))
        if email and email.strip():
            conditions.append(ilike("email", email.strip()))
        if not conditions:
            return []

        rows, _ = await self.store.select(TABLE, [any_of(*conditions)], order=Order("pickup_time"))
        return [booking_from_row(r) for r in rows]

    # =========================================================================
    # CREATE
    # =========================================================================

    async def _default_price(self, service_type: ServiceType) -> float:
        settings = await self.settings_service.get()
        if service_type == ServiceType.TOUR:
            return settings.default_tour_price
        return settings.default_transfer_price

    async def create(
        self,
        data: Union[BookingInput, Dict[str, Any]],
        actor_id: Optional[str] = None,
        actor_name: Optional[str] = None
    ) -> Booking:
        """
        Create a booking from the public form or the back office.

        Missing amount resolves to the default price for the service type.
        The confirmation e-mail is best-effort.
        """
        if not isinstance(data, BookingInput):
            try:
                data = BookingInput.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic(e)

        amount = data.amount
        if amount is None:
            amount = await self._default_price(data.service_type)

        booking_id = new_id()
        entry = BookingHistoryEntry(
            action=HistoryAction.CREATED,
            details="Booking created",
            actor=actor_name or "System",
        )

        row = await self.store.insert(TABLE, {
            "id": booking_id,
            "client_id": _as_uuid(actor_id),
            "client_name": data.client_name.strip(),
            "email": normalize_email(data.email),
            "phone": data.phone,
            "service_type": data.service_type.value,
            "pickup_location": data.pickup_location,
            "dropoff_location": data.dropoff_location,
            "pickup_time": data.pickup_time,
            "pax": data.pax,
            "status": (data.status or BookingStatus.PENDING).value,
            "amount": amount,
            "currency": (data.currency or CurrencyCode.SCR).value,
            "notes": strip_tags(data.notes),
            "history": history_to_json([entry]),
        })
        booking = booking_from_row(row)

        BOOKINGS_CREATED.labels(service_type=booking.service_type.value).inc()
        logger.info(f"Booking {format_reference(booking.id)} created ({booking.service_type.value}, {booking.amount} {booking.currency.value})")

        if self.notifier:
            await self.notifier.booking_created(booking)
        return booking

    # =========================================================================
    # UPDATE
    # =========================================================================

    async def update_status(
        self,
        booking_id: str,
        status: BookingStatus,
        new_price: Optional[float] = None,
        actor_name: str = "Manager"
    ) -> Booking:
        current = await self.get(booking_id)
        status = BookingStatus(status)

        values: Dict[str, Any] = {"status": status.value}
        details = f"Status changed to {status.value}"
        if new_price is not None:
            values["amount"] = new_price
            if new_price:
                details += f". Price set to {_format_amount(new_price)}"

        entry = BookingHistoryEntry(
            action=HistoryAction.STATUS_CHANGE,
            details=details,
            actor=actor_name or "Manager",
            previous_state={"status": current.status.value, "amount": current.amount},
        )
        values["history"] = history_to_json([entry] + current.history)

        row = await self.store.update(TABLE, booking_id, values)
        booking = booking_from_row(row)

        BOOKING_STATUS_CHANGES.labels(status=status.value).inc()
        logger.info(f"Booking {format_reference(booking_id)}: {current.status.value} -> {status.value}")

        if status in (BookingStatus.CONFIRMED, BookingStatus.CANCELLED) and self.notifier:
            await self.notifier.booking_status_changed(booking)

        if status == BookingStatus.CONFIRMED:
            await self._auto_invoice(booking)

        return booking

    async def _auto_invoice(self, booking: Booking) -> None:
        if self.finance_service is None:
            return
        try:
            settings = await self.settings_service.get()
            if not settings.auto_create_invoice:
                return
            invoice = await self.finance_service.create_invoice_from_booking(booking, settings.vat_rate)
            logger.info(f"Auto-invoice {invoice.id} for booking {format_reference(booking.id)}")
        except Exception as e:
            logger.error(f"Auto-invoice failed for booking {booking.id}: {e}")

    async def update_details(self, booking_id: str, patch: Union[BookingPatch, Dict[str, Any]]) -> Booking:
        """
        Sparse edit by presence: a field is written when it was sent and is
        not null. Falsy values such as empty notes are written too.
        """
        if not isinstance(patch, BookingPatch):
            try:
                patch = BookingPatch.model_validate(patch)
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic(e)

        if await self.store.get(TABLE, booking_id) is None:
            raise NotFoundError("Booking", booking_id)

        values = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
        if "email" in values:
            values["email"] = normalize_email(values["email"])
        if "notes" in values:
            values["notes"] = strip_tags(values["notes"])
        if "client_name" in values:
            values["client_name"] = values["client_name"].strip()

        if not values:
            return await self.get(booking_id)

        row = await self.store.update(TABLE, booking_id, values)
        logger.info(f"Booking {format_reference(booking_id)} updated: {sorted(values)}")
        return booking_from_row(row)

    async def delete(self, booking_id: str) -> None:
        """Hard delete. Linked invoices and expenses keep their reference."""
        await self.store.delete(TABLE, booking_id)
        logger.info(f"Booking {format_reference(booking_id)} deleted")
