"""
Finance Service
Version: 1.2

Invoices, expenses and VAT statistics.

Invariants kept here:
- subtotal + tax_amount == total (cent rounding, VAT-inclusive totals)
- total == sum(item totals) whenever items are present
- an invoice created with a total but no items gets one "Service Charge" item
- expense vat_amount is always derived, never taken from the caller

DEPENDS ON: data_store.py, money.py, settings_service.py, notifications.py
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from models import new_id
from schemas import (
    Booking,
    Expense,
    ExpenseInput,
    ExpensePatch,
    FinancialStats,
    Invoice,
    InvoiceCreate,
    InvoiceItem,
    InvoiceItemInput,
    InvoicePatch,
    utcnow,
)
from services.data_store import DataStore, Order, eq, in_
from services.errors import NotFoundError, ValidationError
from services.metrics import EXPENSE_REBILLS, INVOICES_CREATED
from services.money import (
    DEFAULT_VAT_RATE,
    calculate_input_tax,
    calculate_totals,
    convert_to_base,
    exchange_rates,
    line_total,
    safe_number,
)

logger = logging.getLogger(__name__)

INVOICES = "invoices"
EXPENSES = "expenses"
BOOKINGS = "bookings"

SERVICE_CHARGE = "Service Charge"
REBILL_PREFIX = "Expense Re-bill: "


# =============================================================================
# ROW MAPPING
# =============================================================================

def invoice_from_row(row: Dict[str, Any]) -> Invoice:
    """Legacy rows with a total but no items get a synthetic line on read."""
    invoice = Invoice.model_validate(row)
    if not invoice.items and invoice.total > 0:
        invoice.items = [InvoiceItem(
            id=new_id(),
            description="Transport Service" if invoice.booking_id else "General Service",
            quantity=1,
            unit_price=invoice.total,
            total=invoice.total,
        )]
    return invoice


def expense_from_row(row: Dict[str, Any]) -> Expense:
    return Expense.model_validate(row)


def items_to_json(items: Iterable[InvoiceItem]) -> List[Dict[str, Any]]:
    return [item.model_dump(by_alias=True) for item in items]


def build_items(items: Sequence[InvoiceItemInput]) -> List[InvoiceItem]:
    """Line totals are always quantity * unit price."""
    return [
        InvoiceItem(
            id=item.id or new_id(),
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total=line_total(item.quantity, item.unit_price),
        )
        for item in items
    ]


def items_total(items: Iterable[InvoiceItem]) -> float:
    return sum(item.total for item in items)


def _present(patch, clearable: Sequence[str] = ()) -> Dict[str, Any]:
    """Fields the caller actually sent; None only counts for clearable fields."""
    values = patch.model_dump(exclude_unset=True)
    return {k: v for k, v in values.items() if v is not None or k in clearable}


class FinanceService:
    """Invoicing, expense recording and financial statistics."""

    def __init__(self, store: DataStore, settings_service, notifier=None):
        self.store = store
        self.settings_service = settings_service
        self.notifier = notifier

    async def _vat_rate(self, vat_rate: Optional[float]) -> float:
        if vat_rate is not None:
            return vat_rate
        settings = await self.settings_service.get()
        return settings.vat_rate

    # =========================================================================
    # INVOICES - READ
    # =========================================================================

    async def list_invoices(self, page: int = 1, limit: int = 10) -> Tuple[List[Invoice], int]:
        rows, count = await self.store.select(INVOICES, order=Order("date", descending=True), page=page, limit=limit)
        return [invoice_from_row(r) for r in rows], count

    async def list_client_invoices(self, booking_ids: Sequence[str]) -> List[Invoice]:
        if not booking_ids:
            return []
        rows, _ = await self.store.select(
            INVOICES, [in_("booking_id", booking_ids)], order=Order("date", descending=True)
        )
        return [invoice_from_row(r) for r in rows]

    async def get_invoice(self, invoice_id: str) -> Invoice:
        row = await self.store.get(INVOICES, invoice_id)
        if row is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice_from_row(row)

    async def get_invoice_by_booking_id(self, booking_id: str) -> Optional[Invoice]:
        row = await self.store.first(INVOICES, [eq("booking_id", booking_id)], order=Order("date"))
        return invoice_from_row(row) if row else None

    # =========================================================================
    # INVOICES - WRITE
    # =========================================================================

    async def _persist_invoice(self, values: Dict[str, Any], source: str) -> Invoice:
        row = await self.store.insert(INVOICES, values)
        invoice = invoice_from_row(row)
        INVOICES_CREATED.labels(source=source).inc()
        logger.info(f"Invoice {invoice.id} created ({source}), total={invoice.total} {invoice.currency.value}")

        if invoice.booking_id and self.notifier:
            await self._email_invoice(invoice)
        return invoice

    async def _email_invoice(self, invoice: Invoice) -> None:
        try:
            booking = await self.store.get(BOOKINGS, invoice.booking_id)
        except Exception as e:
            logger.error(f"Failed to fetch e-mail for invoice {invoice.id}: {e}")
            return
        if booking and booking.get("email"):
            await self.notifier.invoice_generated(invoice, booking["email"])

    async def create_invoice(self, data: InvoiceCreate, vat_rate: Optional[float] = None) -> Invoice:
        """Manual invoice from a total or an itemized list."""
        if data.booking_id and await self.get_invoice_by_booking_id(data.booking_id):
            raise ValidationError("This booking already has an invoice")

        rate = await self._vat_rate(vat_rate)
        items = build_items(data.items)
        total = safe_number(data.total)

        if not items and total > 0:
            items = [InvoiceItem(id=new_id(), description=SERVICE_CHARGE, quantity=1, unit_price=total, total=total)]
        elif items:
            total = items_total(items)

        totals = calculate_totals(total, rate)
        return await self._persist_invoice({
            "booking_id": data.booking_id,
            "client_name": data.client_name,
            "date": data.date or utcnow(),
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_amount,
            "total": totals.total,
            "paid": data.paid,
            "currency": data.currency.value,
            "items": items_to_json(items),
        }, source="manual")

    async def create_invoice_from_booking(self, booking: Booking, vat_rate: float = DEFAULT_VAT_RATE) -> Invoice:
        """Idempotent: an existing invoice for the booking is returned unchanged."""
        existing = await self.get_invoice_by_booking_id(booking.id)
        if existing:
            logger.debug(f"Booking {booking.id} already invoiced as {existing.id}")
            return existing

        total = safe_number(booking.amount)
        totals = calculate_totals(total, vat_rate)
        item = InvoiceItem(
            id=new_id(),
            description=f"{booking.service_type.value} - {booking.pickup_location} to {booking.dropoff_location}",
            quantity=1,
            unit_price=total,
            total=total,
        )

        return await self._persist_invoice({
            "booking_id": booking.id,
            "client_name": booking.client_name,
            "date": utcnow(),
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_amount,
            "total": totals.total,
            "paid": False,
            "currency": booking.currency.value,
            "items": items_to_json([item]),
        }, source="booking")

    async def update_invoice(self, invoice_id: str, patch: InvoicePatch, vat_rate: Optional[float] = None) -> Invoice:
        """
        Sparse update by field presence.

        Replacing items recomputes line totals, the invoice total and the
        VAT split, overriding any totals sent alongside them.
        """
        values = _present(patch)
        if "items" in values:
            items = build_items(patch.items)
            totals = calculate_totals(items_total(items), await self._vat_rate(vat_rate))
            values.update(
                items=items_to_json(items),
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                total=totals.total,
            )

        row = await self.store.update(INVOICES, invoice_id, values)
        return invoice_from_row(row)

    async def delete_invoice(self, invoice_id: str) -> None:
        await self.store.delete(INVOICES, invoice_id)
        logger.info(f"Invoice {invoice_id} deleted")

    async def toggle_invoice_status(self, invoice_id: str) -> Invoice:
        """Flip the paid flag; nothing else changes."""
        current = await self.store.get(INVOICES, invoice_id)
        if current is None:
            raise NotFoundError("Invoice", invoice_id)
        row = await self.store.update(INVOICES, invoice_id, {"paid": not current.get("paid")})
        return invoice_from_row(row)

    async def add_expense_rebill(
        self,
        invoice_id: str,
        description: str,
        amount: float,
        vat_rate: float = DEFAULT_VAT_RATE
    ) -> Invoice:
        """Append an expense as a billable line and recompute the totals."""
        invoice = await self.get_invoice(invoice_id)
        amount = safe_number(amount)

        items = list(invoice.items) + [InvoiceItem(
            id=new_id(),
            description=f"{REBILL_PREFIX}{description}",
            quantity=1,
            unit_price=amount,
            total=amount,
        )]
        totals = calculate_totals(items_total(items), vat_rate)

        row = await self.store.update(INVOICES, invoice_id, {
            "items": items_to_json(items),
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_amount,
            "total": totals.total,
        })
        EXPENSE_REBILLS.inc()
        logger.info(f"Re-billed {amount} on invoice {invoice_id}")
        return invoice_from_row(row)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def list_expenses(self) -> List[Expense]:
        rows, _ = await self.store.select(EXPENSES, order=Order("date", descending=True))
        return [expense_from_row(r) for r in rows]

    async def add_expense(
        self,
        expense: ExpenseInput,
        vat_rate: Optional[float] = None,
        add_to_invoice: Optional[bool] = None
    ) -> Expense:
        """
        Record an expense. When add_to_invoice is set and the linked booking
        already has an invoice, the expense is re-billed on it; otherwise the
        re-bill is skipped (it is never deferred).
        """
        rate = await self._vat_rate(vat_rate)
        rebill = expense.add_to_invoice if add_to_invoice is None else add_to_invoice

        row = await self.store.insert(EXPENSES, {
            "date": expense.date,
            "category": expense.category.value,
            "description": expense.description,
            "amount": expense.amount,
            "currency": expense.currency.value,
            "vat_included": expense.vat_included,
            "vat_amount": calculate_input_tax(expense.amount, expense.vat_included, rate),
            "booking_id": expense.booking_id or None,
            "reference": expense.reference,
        })

        if rebill and expense.booking_id:
            invoice = await self.get_invoice_by_booking_id(expense.booking_id)
            if invoice:
                await self.add_expense_rebill(invoice.id, expense.description, expense.amount, rate)
            else:
                logger.info(f"No invoice for booking {expense.booking_id}, re-bill skipped")

        return expense_from_row(row)

    async def update_expense(self, expense_id: str, patch: ExpensePatch, vat_rate: Optional[float] = None) -> Expense:
        """Sparse update; vat_amount follows any change of amount or vat_included."""
        values = _present(patch, clearable=("reference", "booking_id", "description"))

        if "amount" in values or "vat_included" in values:
            current = await self.store.get(EXPENSES, expense_id)
            if current is None:
                raise NotFoundError("Expense", expense_id)
            amount = values.get("amount", current.get("amount"))
            included = values.get("vat_included", current.get("vat_included"))
            values["vat_amount"] = calculate_input_tax(amount, bool(included), await self._vat_rate(vat_rate))

        row = await self.store.update(EXPENSES, expense_id, values)
        return expense_from_row(row)

    async def delete_expense(self, expense_id: str) -> None:
        await self.store.delete(EXPENSES, expense_id)
        logger.info(f"Expense {expense_id} deleted")

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def get_stats(self) -> FinancialStats:
        """
        Aggregate every invoice and expense in the base currency (SCR).
        Full scans on every call; nothing is cached.
        """
        settings = await self.settings_service.get()
        rates = exchange_rates(settings.eur_rate, settings.usd_rate)

        invoices, _ = await self.store.select(INVOICES)
        expenses, _ = await self.store.select(EXPENSES)

        total_revenue = sum(convert_to_base(i.get("total"), i.get("currency"), rates) for i in invoices)
        total_output_tax = sum(convert_to_base(i.get("tax_amount"), i.get("currency"), rates) for i in invoices)
        total_expenses = sum(convert_to_base(e.get("amount"), e.get("currency"), rates) for e in expenses)
        total_input_tax = sum(convert_to_base(e.get("vat_amount"), e.get("currency"), rates) for e in expenses)

        return FinancialStats(
            total_revenue=total_revenue,
            total_output_tax=total_output_tax,
            total_expenses=total_expenses,
            total_input_tax=total_input_tax,
            vat_payable=total_output_tax - total_input_tax,
            net_profit=(total_revenue - total_output_tax) - (total_expenses - total_input_tax),
            pending_invoices=sum(1 for i in invoices if not i.get("paid")),
        )
