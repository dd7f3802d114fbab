"""
Tests for BookingService
Version: 1.0

Booking lifecycle: creation defaults, status workflow with history,
best-effort side effects.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from schemas import BookingInput, BookingPatch, BookingStatus, HistoryAction
from services.booking_service import format_reference
from services.errors import NotFoundError, ValidationError
from services.notifications import NotificationKind

ACTOR_ID = "7b0c3c52-2c6f-4d4b-9a43-2f1f7d9c0e11"


def _pickup_in(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


class TestFormatReference:

    def test_prefix_and_uppercase(self):
        assert format_reference("3f2a9c1e-aaaa-bbbb-cccc-000000000000") == "KIT-3F2A9C1E"

    def test_depends_only_on_leading_characters(self):
        a = format_reference("abcdef12-0000-0000-0000-000000000000")
        b = format_reference("abcdef12-ffff-ffff-ffff-ffffffffffff")
        assert a == b

    def test_empty_id(self):
        assert format_reference("") == "REF-ERROR"
        assert format_reference(None) == "REF-ERROR"


class TestCreateBooking:

    @pytest.mark.asyncio
    async def test_normalizes_input(self, services, booking_data):
        booking = await services.bookings.create(booking_data)

        assert booking.email == "marie.laporte@example.com"
        assert booking.notes == "Late flight"
        assert booking.status == BookingStatus.PENDING
        assert booking.currency.value == "SCR"
        assert booking.client_id is None

    @pytest.mark.asyncio
    async def test_single_created_history_entry(self, services, booking_data):
        booking = await services.bookings.create(booking_data, actor_name="Desk")

        assert len(booking.history) == 1
        assert booking.history[0].action == HistoryAction.CREATED
        assert booking.history[0].actor == "Desk"

    @pytest.mark.asyncio
    async def test_system_actor_by_default(self, services, booking_data):
        booking = await services.bookings.create(booking_data)
        assert booking.history[0].actor == "System"

    @pytest.mark.asyncio
    async def test_tour_uses_default_tour_price(self, services, booking_data):
        booking_data["serviceType"] = "TOUR"
        booking = await services.bookings.create(booking_data)
        assert booking.amount == 3000

    @pytest.mark.asyncio
    async def test_transfer_uses_configured_price(self, services, save_settings, booking_data):
        await save_settings(default_transfer_price=950)
        booking = await services.bookings.create(booking_data)
        assert booking.amount == 950

    @pytest.mark.asyncio
    async def test_charter_falls_back_to_transfer_price(self, services, booking_data):
        booking_data["serviceType"] = "CHARTER"
        booking = await services.bookings.create(booking_data)
        assert booking.amount == 1200

    @pytest.mark.asyncio
    async def test_explicit_amount_kept(self, services, booking_data):
        booking_data.update(amount=450, currency="EUR")
        booking = await services.bookings.create(booking_data)

        assert booking.amount == 450
        assert booking.currency.value == "EUR"

    @pytest.mark.asyncio
    async def test_nan_amount_treated_as_absent(self, services, booking_data):
        booking_data["amount"] = float("nan")
        booking = await services.bookings.create(booking_data)
        assert booking.amount == 1200

    @pytest.mark.asyncio
    async def test_client_id_only_for_profile_uuid(self, services, booking_data):
        linked = await services.bookings.create(booking_data, actor_id=ACTOR_ID)
        anonymous = await services.bookings.create(booking_data, actor_id="not-a-uuid")

        assert linked.client_id == ACTOR_ID
        assert anonymous.client_id is None

    # ========================================================================
    # VALIDATION
    # ========================================================================

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field,value", [
        ("clientName", "M"),
        ("email", "not-an-email"),
        ("serviceType", "HELICOPTER"),
        ("pickupLocation", "Ai"),
        ("dropoffLocation", ""),
        ("pax", 0),
    ])
    async def test_invalid_input_rejected(self, services, booking_data, field, value):
        booking_data[field] = value
        with pytest.raises(ValidationError):
            await services.bookings.create(booking_data)

    @pytest.mark.asyncio
    async def test_past_pickup_rejected(self, services, booking_data):
        booking_data["pickupTime"] = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
        with pytest.raises(ValidationError):
            await services.bookings.create(booking_data)

    # ========================================================================
    # NOTIFICATIONS
    # ========================================================================

    @pytest.mark.asyncio
    async def test_client_and_admin_copy_queued(self, services, outbox, booking_data):
        booking = await services.bookings.create(booking_data)

        assert [e.kind for e in outbox.events] == [NotificationKind.NEW_BOOKING] * 2
        client, admin = outbox.events
        assert client.recipient == "marie.laporte@example.com"
        assert admin.recipient == "info@kreol.sc"
        assert admin.name == "Marie Laporte (Admin Copy)"
        assert client.data["reference"] == booking.id[:8].upper()

    @pytest.mark.asyncio
    async def test_notifications_can_be_disabled(self, services, save_settings, outbox, booking_data):
        await save_settings(enable_email_notifications=False)
        await services.bookings.create(booking_data)
        assert outbox.events == []

    @pytest.mark.asyncio
    async def test_outbox_failure_does_not_fail_creation(self, services, outbox, booking_data):
        outbox.put = AsyncMock(side_effect=ConnectionError("redis down"))

        booking = await services.bookings.create(booking_data)

        assert await services.bookings.get(booking.id)


class TestUpdateStatus:

    @pytest.mark.asyncio
    async def test_confirm_with_price_round_trip(self, services, booking_data):
        created = await services.bookings.create(booking_data)

        updated = await services.bookings.update_status(created.id, BookingStatus.CONFIRMED, 2000)

        assert updated.amount == 2000
        assert updated.status == BookingStatus.CONFIRMED
        first = updated.history[0]
        assert first.action == HistoryAction.STATUS_CHANGE
        assert first.previous_state == {"status": "PENDING", "amount": created.amount}
        assert first.details == "Status changed to CONFIRMED. Price set to 2000"
        assert updated.history[1].action == HistoryAction.CREATED

        stored = await services.bookings.get(created.id)
        assert stored.amount == 2000
        assert stored.history[0].actor == "Manager"

    @pytest.mark.asyncio
    async def test_history_is_most_recent_first(self, services, booking_data):
        created = await services.bookings.create(booking_data)
        await services.bookings.update_status(created.id, BookingStatus.CONFIRMED)
        updated = await services.bookings.update_status(created.id, BookingStatus.COMPLETED, actor_name="Lea")

        assert [h.action for h in updated.history] == [
            HistoryAction.STATUS_CHANGE, HistoryAction.STATUS_CHANGE, HistoryAction.CREATED
        ]
        assert updated.history[0].details == "Status changed to COMPLETED"
        assert updated.history[0].previous_state["status"] == "CONFIRMED"
        assert updated.history[0].actor == "Lea"

    @pytest.mark.asyncio
    async def test_any_transition_allowed(self, services, booking_data):
        created = await services.bookings.create(booking_data)
        await services.bookings.update_status(created.id, BookingStatus.CANCELLED)
        reopened = await services.bookings.update_status(created.id, BookingStatus.PENDING)
        assert reopened.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_missing_booking(self, services):
        with pytest.raises(NotFoundError):
            await services.bookings.update_status("00000000-0000-0000-0000-000000000000", BookingStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_status_notifications(self, services, outbox, booking_data):
        created = await services.bookings.create(booking_data)
        outbox.events.clear()

        await services.bookings.update_status(created.id, BookingStatus.CONFIRMED)
        await services.bookings.update_status(created.id, BookingStatus.COMPLETED)
        await services.bookings.update_status(created.id, BookingStatus.CANCELLED)

        assert [e.kind for e in outbox.events] == [
            NotificationKind.BOOKING_CONFIRMED, NotificationKind.BOOKING_CANCELLED
        ]

    # ========================================================================
    # AUTO-INVOICE
    # ========================================================================

    @pytest.mark.asyncio
    async def test_no_auto_invoice_by_default(self, services, booking_data):
        created = await services.bookings.create(booking_data)
        await services.bookings.update_status(created.id, BookingStatus.CONFIRMED)

        assert await services.finance.get_invoice_by_booking_id(created.id) is None

    @pytest.mark.asyncio
    async def test_auto_invoice_is_idempotent(self, services, save_settings, booking_data):
        await save_settings(auto_create_invoice=True)
        created = await services.bookings.create(booking_data)

        await services.bookings.update_status(created.id, BookingStatus.CONFIRMED, 1150)
        await services.bookings.update_status(created.id, BookingStatus.PENDING)
        await services.bookings.update_status(created.id, BookingStatus.CONFIRMED)

        invoices, count = await services.finance.list_invoices()
        assert count == 1
        assert invoices[0].total == 1150
        assert invoices[0].subtotal == 1000
        assert invoices[0].tax_amount == 150

    @pytest.mark.asyncio
    async def test_auto_invoice_failure_is_swallowed(self, services, save_settings, booking_data):
        await save_settings(auto_create_invoice=True)
        services.bookings.finance_service.create_invoice_from_booking = AsyncMock(side_effect=RuntimeError("boom"))
        created = await services.bookings.create(booking_data)

        updated = await services.bookings.update_status(created.id, BookingStatus.CONFIRMED)

        assert updated.status == BookingStatus.CONFIRMED


class TestUpdateDetails:

    @pytest.mark.asyncio
    async def test_sparse_patch(self, services, booking_data):
        created = await services.bookings.create(booking_data)

        updated = await services.bookings.update_details(
            created.id, BookingPatch(pax=4, email=" NEW@Example.com", notes="<i>VIP</i>")
        )

        assert updated.pax == 4
        assert updated.email == "new@example.com"
        assert updated.notes == "VIP"
        assert updated.client_name == created.client_name
        assert updated.pickup_location == created.pickup_location

    @pytest.mark.asyncio
    async def test_empty_notes_are_written(self, services, booking_data):
        created = await services.bookings.create(booking_data)
        updated = await services.bookings.update_details(created.id, {"notes": ""})
        assert updated.notes == ""

    @pytest.mark.asyncio
    async def test_null_does_not_clear(self, services, booking_data):
        created = await services.bookings.create(booking_data)
        updated = await services.bookings.update_details(created.id, {"phone": None})
        assert updated.phone == created.phone

    @pytest.mark.asyncio
    async def test_zero_pax_rejected(self, services, booking_data):
        created = await services.bookings.create(booking_data)
        with pytest.raises(ValidationError):
            await services.bookings.update_details(created.id, {"pax": 0})

    @pytest.mark.asyncio
    async def test_missing_booking(self, services):
        with pytest.raises(NotFoundError):
            await services.bookings.update_details("00000000-0000-0000-0000-000000000000", {"pax": 2})


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_newest_pickup_first(self, services, booking_data):
        for days in (3, 10, 5):
            booking_data["pickupTime"] = _pickup_in(days)
            await services.bookings.create(booking_data)

        bookings, count = await services.bookings.list(page=1, limit=2)

        assert count == 3
        assert bookings[0].pickup_time > bookings[1].pickup_time

    @pytest.mark.asyncio
    async def test_stats(self, services, booking_data):
        a = await services.bookings.create(booking_data)
        await services.bookings.create(booking_data)
        await services.bookings.update_status(a.id, BookingStatus.CONFIRMED)

        stats = await services.bookings.stats()

        assert stats.pending == 1
        assert stats.confirmed == 1

    @pytest.mark.asyncio
    async def test_list_for_client_by_id_or_email(self, services, booking_data):
        await services.bookings.create(booking_data, actor_id=ACTOR_ID)
        booking_data["email"] = "other@example.com"
        await services.bookings.create(booking_data, actor_id=ACTOR_ID)
        await services.bookings.create(booking_data)
        booking_data["email"] = "stranger@example.com"
        await services.bookings.create(booking_data)

        by_id = await services.bookings.list_for_client(ACTOR_ID, None)
        by_email = await services.bookings.list_for_client(None, " OTHER@example.com ")
        both = await services.bookings.list_for_client(ACTOR_ID, "other@example.com")

        assert len(by_id) == 2
        assert len(by_email) == 2
        assert len(both) == 3

    @pytest.mark.asyncio
    async def test_list_for_client_without_identity(self, services, booking_data):
        await services.bookings.create(booking_data)
        assert await services.bookings.list_for_client(None, "  ") == []

    @pytest.mark.asyncio
    async def test_delete_leaves_invoice(self, services, booking_data):
        created = await services.bookings.create(booking_data)
        invoice = await services.finance.create_invoice_from_booking(created)

        await services.bookings.delete(created.id)

        with pytest.raises(NotFoundError):
            await services.bookings.get(created.id)
        assert (await services.finance.get_invoice(invoice.id)).booking_id == created.id

    @pytest.mark.asyncio
    async def test_input_model_accepted(self, services, booking_data):
        booking = await services.bookings.create(BookingInput.model_validate(booking_data))
        assert booking.id
