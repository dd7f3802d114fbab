"""
Reports Router (back office)
Version: 1.0
"""
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query

from schemas import Booking, FinancialReport
from services.container import Services
from routers.deps import get_services

router = APIRouter()


@router.get("/manifest", response_model=List[Booking])
async def manifest(
    start: date = Query(...),
    end: date = Query(...),
    services: Services = Depends(get_services)
):
    return await services.reports.get_manifest(start, end)


@router.get("/financial", response_model=FinancialReport)
async def financial_report(
    start: date = Query(...),
    end: date = Query(...),
    services: Services = Depends(get_services)
):
    return await services.reports.get_financial_report(start, end)
