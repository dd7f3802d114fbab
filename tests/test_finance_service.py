"""
Tests for FinanceService
Version: 1.0

Invoices, expense re-billing and the VAT dashboard.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from schemas import (
    ExpenseCategory,
    ExpenseInput,
    ExpensePatch,
    InvoiceCreate,
    InvoiceItemInput,
    InvoicePatch,
)
from services.errors import NotFoundError, ValidationError
from services.notifications import NotificationKind

MISSING_ID = "00000000-0000-0000-0000-000000000000"


def _expense(**overrides) -> ExpenseInput:
    values = dict(
        date=datetime(2026, 3, 10, tzinfo=timezone.utc),
        category=ExpenseCategory.FUEL,
        description="Diesel",
        amount=115,
        vat_included=True,
    )
    values.update(overrides)
    return ExpenseInput(**values)


@pytest.fixture
def booking(services, booking_data):
    async def _create(**overrides):
        booking_data.update(overrides)
        return await services.bookings.create(booking_data)
    return _create


class TestCreateInvoice:

    @pytest.mark.asyncio
    async def test_itemized_total_recomputed(self, services):
        invoice = await services.finance.create_invoice(InvoiceCreate(
            client_name="Walk-in",
            total=999,
            items=[
                InvoiceItemInput(description="Transfer", quantity=2, unit_price=50),
                InvoiceItemInput(description="Luggage", quantity=1, unit_price=30),
            ],
        ))

        assert [i.total for i in invoice.items] == [100, 30]
        assert invoice.total == 130
        assert invoice.subtotal == pytest.approx(113.04)
        assert invoice.tax_amount == pytest.approx(16.96)
        assert all(i.id for i in invoice.items)

    @pytest.mark.asyncio
    async def test_total_without_items_gets_service_charge(self, services):
        invoice = await services.finance.create_invoice(InvoiceCreate(client_name="Walk-in", total=1150))

        assert len(invoice.items) == 1
        assert invoice.items[0].description == "Service Charge"
        assert invoice.items[0].total == 1150
        assert (invoice.subtotal, invoice.tax_amount) == (1000, 150)

    @pytest.mark.asyncio
    async def test_uses_configured_vat_rate(self, services, save_settings):
        await save_settings(vat_rate=0.1)
        invoice = await services.finance.create_invoice(InvoiceCreate(client_name="A", total=110))
        assert (invoice.subtotal, invoice.tax_amount) == (100, 10)

    @pytest.mark.asyncio
    async def test_second_invoice_for_booking_rejected(self, services, booking):
        b = await booking()
        await services.finance.create_invoice(InvoiceCreate(client_name="A", total=10, booking_id=b.id))

        with pytest.raises(ValidationError):
            await services.finance.create_invoice(InvoiceCreate(client_name="A", total=20, booking_id=b.id))

    @pytest.mark.asyncio
    async def test_linked_invoice_emails_client(self, services, outbox, booking):
        b = await booking()
        outbox.events.clear()

        invoice = await services.finance.create_invoice(InvoiceCreate(client_name="A", total=10, booking_id=b.id))

        assert len(outbox.events) == 1
        event = outbox.events[0]
        assert event.kind == NotificationKind.INVOICE_GENERATED
        assert event.recipient == b.email
        assert event.data["invoiceNumber"] == invoice.id[:8].upper()
        assert event.data["link"] == "https://portal.example.sc/#/portal"


class TestInvoiceFromBooking:

    @pytest.mark.asyncio
    async def test_single_route_item(self, services, booking):
        b = await booking(amount=1150)

        invoice = await services.finance.create_invoice_from_booking(b, 0.15)

        assert invoice.booking_id == b.id
        assert invoice.client_name == b.client_name
        assert invoice.paid is False
        assert len(invoice.items) == 1
        assert invoice.items[0].description == (
            "TRANSFER - Mahe International Airport to Beau Vallon Hotel"
        )
        assert (invoice.subtotal, invoice.tax_amount, invoice.total) == (1000, 150, 1150)

    @pytest.mark.asyncio
    async def test_idempotent(self, services, booking):
        b = await booking()

        first = await services.finance.create_invoice_from_booking(b)
        second = await services.finance.create_invoice_from_booking(b)

        assert first.id == second.id
        _, count = await services.finance.list_invoices()
        assert count == 1

    @pytest.mark.asyncio
    async def test_keeps_booking_currency(self, services, booking):
        b = await booking(amount=100, currency="EUR")
        invoice = await services.finance.create_invoice_from_booking(b)
        assert invoice.currency.value == "EUR"


class TestUpdateInvoice:

    @pytest.mark.asyncio
    async def test_toggle_only_flips_paid(self, services):
        invoice = await services.finance.create_invoice(InvoiceCreate(client_name="A", total=1150))

        toggled = await services.finance.toggle_invoice_status(invoice.id)
        back = await services.finance.toggle_invoice_status(invoice.id)

        assert toggled.paid is True
        assert back.paid is False
        assert toggled.model_dump(exclude={"paid"}) == invoice.model_dump(exclude={"paid"})

    @pytest.mark.asyncio
    async def test_toggle_missing(self, services):
        with pytest.raises(NotFoundError):
            await services.finance.toggle_invoice_status(MISSING_ID)

    @pytest.mark.asyncio
    async def test_sparse_patch(self, services):
        invoice = await services.finance.create_invoice(InvoiceCreate(client_name="A", total=1150))

        updated = await services.finance.update_invoice(invoice.id, InvoicePatch(client_name="B"))

        assert updated.client_name == "B"
        assert updated.total == 1150

    @pytest.mark.asyncio
    async def test_item_patch_recomputes_totals(self, services):
        invoice = await services.finance.create_invoice(InvoiceCreate(client_name="A", total=1150))

        updated = await services.finance.update_invoice(invoice.id, InvoicePatch(
            total=1, items=[InvoiceItemInput(quantity=2, unit_price=50), InvoiceItemInput(quantity=1, unit_price=30)]
        ))

        assert updated.total == 130
        assert updated.subtotal == pytest.approx(113.04)
        assert updated.tax_amount == pytest.approx(16.96)

    @pytest.mark.asyncio
    async def test_delete(self, services):
        invoice = await services.finance.create_invoice(InvoiceCreate(client_name="A", total=10))
        await services.finance.delete_invoice(invoice.id)
        with pytest.raises(NotFoundError):
            await services.finance.get_invoice(invoice.id)


class TestLegacyInvoices:

    @pytest.mark.asyncio
    async def test_total_without_items_gets_synthetic_line(self, services, store):
        linked = await store.insert("invoices", {"client_name": "A", "total": 500, "booking_id": MISSING_ID})
        general = await store.insert("invoices", {"client_name": "B", "total": 80, "currency": None})

        a = await services.finance.get_invoice(linked["id"])
        b = await services.finance.get_invoice(general["id"])

        assert a.items[0].description == "Transport Service"
        assert b.items[0].description == "General Service"
        assert b.items[0].total == 80
        assert b.currency.value == "SCR"


class TestExpenses:

    @pytest.mark.asyncio
    async def test_vat_derived(self, services):
        included = await services.finance.add_expense(_expense())
        excluded = await services.finance.add_expense(_expense(vat_included=False))

        assert included.vat_amount == 15
        assert excluded.vat_amount == 0

    @pytest.mark.asyncio
    async def test_rebill_appends_item(self, services, booking):
        b = await booking(amount=1150)
        invoice = await services.finance.create_invoice_from_booking(b)

        await services.finance.add_expense(_expense(amount=230, booking_id=b.id, add_to_invoice=True))

        updated = await services.finance.get_invoice(invoice.id)
        assert len(updated.items) == 2
        assert updated.items[1].description == "Expense Re-bill: Diesel"
        assert updated.items[1].unit_price == 230
        assert updated.total == 1380
        assert updated.subtotal == 1200
        assert updated.tax_amount == 180

    @pytest.mark.asyncio
    async def test_rebill_skipped_without_invoice(self, services, booking):
        b = await booking()

        expense = await services.finance.add_expense(_expense(booking_id=b.id, add_to_invoice=True))

        assert expense.booking_id == b.id
        assert await services.finance.get_invoice_by_booking_id(b.id) is None

    @pytest.mark.asyncio
    async def test_no_rebill_unless_requested(self, services, booking):
        b = await booking(amount=1150)
        invoice = await services.finance.create_invoice_from_booking(b)

        await services.finance.add_expense(_expense(booking_id=b.id))

        assert len((await services.finance.get_invoice(invoice.id)).items) == 1

    @pytest.mark.asyncio
    async def test_update_recomputes_vat(self, services):
        expense = await services.finance.add_expense(_expense())

        cheaper = await services.finance.update_expense(expense.id, ExpensePatch(amount=230))
        untaxed = await services.finance.update_expense(expense.id, ExpensePatch(vat_included=False))

        assert cheaper.vat_amount == 30
        assert untaxed.vat_amount == 0
        assert untaxed.amount == 230

    @pytest.mark.asyncio
    async def test_update_description_keeps_vat(self, services):
        expense = await services.finance.add_expense(_expense())
        updated = await services.finance.update_expense(expense.id, ExpensePatch(description="Petrol"))

        assert updated.description == "Petrol"
        assert updated.vat_amount == 15

    @pytest.mark.asyncio
    async def test_update_missing(self, services):
        with pytest.raises(NotFoundError):
            await services.finance.update_expense(MISSING_ID, ExpensePatch(amount=1))

    @pytest.mark.asyncio
    async def test_list_newest_first_and_delete(self, services):
        old = await services.finance.add_expense(_expense(date=datetime(2026, 1, 1, tzinfo=timezone.utc)))
        new = await services.finance.add_expense(_expense(date=datetime(2026, 2, 1, tzinfo=timezone.utc)))

        assert [e.id for e in await services.finance.list_expenses()] == [new.id, old.id]

        await services.finance.delete_expense(old.id)
        assert [e.id for e in await services.finance.list_expenses()] == [new.id]


class TestStats:

    @pytest.mark.asyncio
    async def test_multi_currency_revenue(self, services, save_settings):
        await save_settings(eur_rate=15)
        await services.finance.create_invoice(InvoiceCreate(client_name="A", total=100))
        await services.finance.create_invoice(InvoiceCreate(client_name="B", total=10, currency="EUR"))

        stats = await services.finance.get_stats()

        assert stats.total_revenue == pytest.approx(250)
        assert stats.pending_invoices == 2

    @pytest.mark.asyncio
    async def test_vat_and_profit(self, services):
        paid = await services.finance.create_invoice(InvoiceCreate(client_name="A", total=1150))
        await services.finance.toggle_invoice_status(paid.id)
        await services.finance.add_expense(_expense(amount=115))

        stats = await services.finance.get_stats()

        assert stats.total_output_tax == pytest.approx(150)
        assert stats.total_input_tax == pytest.approx(15)
        assert stats.vat_payable == pytest.approx(135)
        assert stats.net_profit == pytest.approx((1150 - 150) - (115 - 15))
        assert stats.pending_invoices == 0

    @pytest.mark.asyncio
    async def test_empty_store(self, services):
        stats = await services.finance.get_stats()
        assert stats.total_revenue == 0
        assert stats.net_profit == 0

    @pytest.mark.asyncio
    async def test_settings_failure_uses_default_rates(self, services, store):
        await store.insert("invoices", {"client_name": "A", "total": 10, "currency": "USD"})
        store.get = AsyncMock(side_effect=ConnectionError("down"))

        stats = await services.finance.get_stats()

        assert stats.total_revenue == pytest.approx(141)
