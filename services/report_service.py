"""
Report Service
Version: 1.0

Period views for the back office:
- driver manifest (bookings in a date window, cancelled ones excluded)
- financial report (invoices and expenses in a date window)

Both windows are inclusive whole days in the configured report timezone.
The financial report's net profit is revenue minus expenses; unlike
FinanceService.get_stats it does not net VAT.

DEPENDS ON: data_store.py, finance_service.py (row mapping)
"""

import logging
from datetime import date, datetime, time, timezone
from typing import List, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from schemas import Booking, BookingStatus, FinancialReport, FinancialSummary
from services.booking_service import booking_from_row
from services.data_store import DataStore, Order, gte, lte, neq
from services.errors import ValidationError
from services.finance_service import expense_from_row, invoice_from_row

logger = logging.getLogger(__name__)


def day_window(start: date, end: date, tz_name: str = "UTC") -> Tuple[datetime, datetime]:
    """[start 00:00, end 23:59:59.999999] in tz_name, returned in UTC."""
    if end < start:
        raise ValidationError("End date must not be before start date")
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown report timezone '{tz_name}', using UTC")
        tz = timezone.utc

    lower = datetime.combine(start, time.min, tzinfo=tz)
    upper = datetime.combine(end, time.max, tzinfo=tz)
    return lower.astimezone(timezone.utc), upper.astimezone(timezone.utc)


class ReportService:

    def __init__(self, store: DataStore, tz_name: str = "UTC"):
        self.store = store
        self.tz_name = tz_name

    async def get_manifest(self, start: date, end: date) -> List[Booking]:
        lower, upper = day_window(start, end, self.tz_name)
        rows, _ = await self.store.select(
            "bookings",
            [gte("pickup_time", lower), lte("pickup_time", upper), neq("status", BookingStatus.CANCELLED)],
            order=Order("pickup_time"),
        )
        return [booking_from_row(r) for r in rows]

    async def get_financial_report(self, start: date, end: date) -> FinancialReport:
        lower, upper = day_window(start, end, self.tz_name)
        window = [gte("date", lower), lte("date", upper)]

        invoice_rows, _ = await self.store.select("invoices", window, order=Order("date"))
        expense_rows, _ = await self.store.select("expenses", window, order=Order("date"))
        invoices = [invoice_from_row(r) for r in invoice_rows]
        expenses = [expense_from_row(r) for r in expense_rows]

        total_revenue = sum(i.total for i in invoices)
        total_paid = sum(i.total for i in invoices if i.paid)
        total_expenses = sum(e.amount for e in expenses)

        return FinancialReport(
            invoices=invoices,
            expenses=expenses,
            summary=FinancialSummary(
                total_revenue=total_revenue,
                total_paid_revenue=total_paid,
                total_pending_revenue=total_revenue - total_paid,
                total_expenses=total_expenses,
                net_profit=total_revenue - total_expenses,
            ),
        )
