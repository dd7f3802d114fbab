"""
Tests for ReportService
Version: 1.0
"""

from datetime import date, datetime, timezone

import pytest

from services.errors import ValidationError
from services.report_service import ReportService, day_window


def _booking(name, when, status="CONFIRMED"):
    return {
        "client_name": name,
        "service_type": "TRANSFER",
        "pickup_location": "Airport",
        "dropoff_location": "Hotel",
        "pickup_time": when,
        "status": status,
    }


class TestDayWindow:

    def test_inclusive_whole_days_utc(self):
        lower, upper = day_window(date(2026, 3, 1), date(2026, 3, 2))

        assert lower == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert upper == datetime(2026, 3, 2, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_local_timezone(self):
        lower, upper = day_window(date(2026, 3, 1), date(2026, 3, 1), "Indian/Mahe")

        assert lower == datetime(2026, 2, 28, 20, tzinfo=timezone.utc)
        assert upper == datetime(2026, 3, 1, 19, 59, 59, 999999, tzinfo=timezone.utc)

    def test_unknown_timezone_falls_back_to_utc(self):
        lower, _ = day_window(date(2026, 3, 1), date(2026, 3, 1), "Nowhere/Atlantis")
        assert lower == datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_reversed_range(self):
        with pytest.raises(ValidationError):
            day_window(date(2026, 3, 2), date(2026, 3, 1))


class TestManifest:

    @pytest.mark.asyncio
    async def test_window_excludes_cancelled_and_sorts(self, store):
        for row in (
            _booking("Late", "2026-03-02T23:59:59Z"),
            _booking("Early", "2026-03-01T00:00:00Z"),
            _booking("Cancelled", "2026-03-01T12:00:00Z", "CANCELLED"),
            _booking("Pending", "2026-03-01T10:00:00Z", "PENDING"),
            _booking("Outside", "2026-03-03T00:00:00Z"),
        ):
            await store.insert("bookings", row)

        manifest = await ReportService(store).get_manifest(date(2026, 3, 1), date(2026, 3, 2))

        assert [b.client_name for b in manifest] == ["Early", "Pending", "Late"]


class TestFinancialReport:

    @pytest.mark.asyncio
    async def test_summary_does_not_net_vat(self, store):
        await store.insert("invoices", {"client_name": "A", "total": 1150, "tax_amount": 150, "paid": True, "date": "2026-03-01T09:00:00Z"})
        await store.insert("invoices", {"client_name": "B", "total": 500, "tax_amount": 65.22, "paid": False, "date": "2026-03-02T18:00:00Z"})
        await store.insert("invoices", {"client_name": "C", "total": 999, "date": "2026-04-01T09:00:00Z"})
        await store.insert("expenses", {"category": "FUEL", "amount": 300, "vat_amount": 39.13, "date": "2026-03-02T10:00:00Z"})

        report = await ReportService(store).get_financial_report(date(2026, 3, 1), date(2026, 3, 2))

        assert len(report.invoices) == 2
        assert len(report.expenses) == 1
        assert report.summary.total_revenue == 1650
        assert report.summary.total_paid_revenue == 1150
        assert report.summary.total_pending_revenue == 500
        assert report.summary.total_expenses == 300
        assert report.summary.net_profit == 1350
