"""
Public Router
Version: 1.0

Booking funnel and public-site content. No session required; a signed-in
client's bookings are linked to their profile.
"""
from typing import List

import structlog
from fastapi import APIRouter, Depends, status

from schemas import Advert, Booking, BookingInput, BusinessSettings, GalleryImage, ServiceContent
from security import SessionContext, get_session
from services.container import Services
from routers.deps import get_services

router = APIRouter()
logger = structlog.get_logger("public")


@router.post("/bookings", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingInput,
    session: SessionContext = Depends(get_session),
    services: Services = Depends(get_services)
):
    # Price and status are set by staff; the public form gets the defaults
    payload = payload.model_copy(update={"amount": None, "status": None})
    booking = await services.bookings.create(payload, actor_id=session.actor_id, actor_name=session.actor_name)
    logger.info("Public booking received", booking_id=booking.id, service_type=booking.service_type.value)
    return booking


@router.get("/settings", response_model=BusinessSettings)
async def get_business_settings(services: Services = Depends(get_services)):
    return await services.settings.get()


@router.get("/adverts", response_model=List[Advert])
async def list_active_adverts(services: Services = Depends(get_services)):
    return await services.content.list_adverts(active_only=True)


@router.get("/gallery", response_model=List[GalleryImage])
async def list_gallery(services: Services = Depends(get_services)):
    return await services.content.list_gallery()


@router.get("/services", response_model=List[ServiceContent])
async def list_services(services: Services = Depends(get_services)):
    return await services.content.list_services()
