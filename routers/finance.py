"""
Finance Router (back office)
Version: 1.0

Invoices, expenses and the VAT dashboard.
"""
from typing import List

import structlog
from fastapi import APIRouter, Depends, Query, status

from schemas import (
    Expense,
    ExpenseInput,
    ExpensePatch,
    FinancialStats,
    Invoice,
    InvoiceCreate,
    InvoicePage,
    InvoicePatch,
)
from services.container import Services
from routers.deps import get_services

router = APIRouter()
logger = structlog.get_logger("finance")


# === INVOICES ===

@router.get("/invoices", response_model=InvoicePage)
async def list_invoices(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services)
):
    invoices, count = await services.finance.list_invoices(page, limit)
    return InvoicePage(data=invoices, count=count)


@router.get("/invoices/{invoice_id}", response_model=Invoice)
async def get_invoice(invoice_id: str, services: Services = Depends(get_services)):
    return await services.finance.get_invoice(invoice_id)


@router.post("/invoices", response_model=Invoice, status_code=status.HTTP_201_CREATED)
async def create_invoice(payload: InvoiceCreate, services: Services = Depends(get_services)):
    return await services.finance.create_invoice(payload)


@router.post("/invoices/from-booking/{booking_id}", response_model=Invoice)
async def create_invoice_from_booking(booking_id: str, services: Services = Depends(get_services)):
    """Returns the existing invoice when the booking is already invoiced."""
    booking = await services.bookings.get(booking_id)
    settings = await services.settings.get()
    invoice = await services.finance.create_invoice_from_booking(booking, settings.vat_rate)
    logger.info("Invoice from booking", booking_id=booking_id, invoice_id=invoice.id)
    return invoice


@router.patch("/invoices/{invoice_id}", response_model=Invoice)
async def update_invoice(invoice_id: str, payload: InvoicePatch, services: Services = Depends(get_services)):
    return await services.finance.update_invoice(invoice_id, payload)


@router.post("/invoices/{invoice_id}/toggle", response_model=Invoice)
async def toggle_invoice(invoice_id: str, services: Services = Depends(get_services)):
    return await services.finance.toggle_invoice_status(invoice_id)


@router.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(invoice_id: str, services: Services = Depends(get_services)):
    await services.finance.delete_invoice(invoice_id)


# === EXPENSES ===

@router.get("/expenses", response_model=List[Expense])
async def list_expenses(services: Services = Depends(get_services)):
    return await services.finance.list_expenses()


@router.post("/expenses", response_model=Expense, status_code=status.HTTP_201_CREATED)
async def add_expense(payload: ExpenseInput, services: Services = Depends(get_services)):
    return await services.finance.add_expense(payload)


@router.patch("/expenses/{expense_id}", response_model=Expense)
async def update_expense(expense_id: str, payload: ExpensePatch, services: Services = Depends(get_services)):
    return await services.finance.update_expense(expense_id, payload)


@router.delete("/expenses/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(expense_id: str, services: Services = Depends(get_services)):
    await services.finance.delete_expense(expense_id)


# === STATS ===

@router.get("/finance/stats", response_model=FinancialStats)
async def finance_stats(services: Services = Depends(get_services)):
    return await services.finance.get_stats()
