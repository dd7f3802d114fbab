"""
Bookings Router (back office)
Version: 1.0
"""
from typing import List

import structlog
from fastapi import APIRouter, Depends, Query, status

from schemas import (
    Booking,
    BookingInput,
    BookingOption,
    BookingPage,
    BookingPatch,
    BookingStats,
    StatusUpdate,
)
from security import SessionContext, require_staff
from services.container import Services
from routers.deps import get_services

router = APIRouter()
logger = structlog.get_logger("bookings")


@router.get("", response_model=BookingPage)
async def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services)
):
    bookings, count = await services.bookings.list(page, limit)
    return BookingPage(data=bookings, count=count)


@router.get("/stats", response_model=BookingStats)
async def booking_stats(services: Services = Depends(get_services)):
    return await services.bookings.stats()


@router.get("/options", response_model=List[BookingOption])
async def booking_options(services: Services = Depends(get_services)):
    return await services.bookings.options()


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(booking_id: str, services: Services = Depends(get_services)):
    return await services.bookings.get(booking_id)


@router.post("", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingInput,
    session: SessionContext = Depends(require_staff),
    services: Services = Depends(get_services)
):
    return await services.bookings.create(payload, actor_name=session.actor_name)


@router.patch("/{booking_id}", response_model=Booking)
async def update_booking(
    booking_id: str,
    payload: BookingPatch,
    services: Services = Depends(get_services)
):
    return await services.bookings.update_details(booking_id, payload)


@router.patch("/{booking_id}/status", response_model=Booking)
async def update_booking_status(
    booking_id: str,
    payload: StatusUpdate,
    session: SessionContext = Depends(require_staff),
    services: Services = Depends(get_services)
):
    booking = await services.bookings.update_status(
        booking_id, payload.status, payload.price, actor_name=session.actor_name or "Manager"
    )
    logger.info("Status updated", booking_id=booking_id, status=booking.status.value, actor=session.actor_id)
    return booking


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(booking_id: str, services: Services = Depends(get_services)):
    await services.bookings.delete(booking_id)
