"""
Client Portal Router
Version: 1.0

Self-service views for a signed-in client: own bookings, own invoices,
own profile.
"""
from typing import List

import structlog
from fastapi import APIRouter, Depends

from schemas import Booking, Invoice, ProfilePatch, UserProfile
from security import SessionContext, require_session
from services.container import Services
from routers.deps import get_services

router = APIRouter()
logger = structlog.get_logger("portal")


@router.get("/bookings", response_model=List[Booking])
async def my_bookings(
    session: SessionContext = Depends(require_session),
    services: Services = Depends(get_services)
):
    return await services.bookings.list_for_client(session.actor_id, session.email)


@router.get("/invoices", response_model=List[Invoice])
async def my_invoices(
    session: SessionContext = Depends(require_session),
    services: Services = Depends(get_services)
):
    bookings = await services.bookings.list_for_client(session.actor_id, session.email)
    return await services.finance.list_client_invoices([b.id for b in bookings])


@router.patch("/profile", response_model=UserProfile)
async def update_my_profile(
    payload: ProfilePatch,
    session: SessionContext = Depends(require_session),
    services: Services = Depends(get_services)
):
    profile = await services.users.update_profile(session.actor_id, payload)
    logger.info("Profile updated", user_id=session.actor_id)
    return profile
