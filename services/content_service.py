"""
Content Service
Version: 1.0

Public-site content managed from the back office:
adverts, gallery images and the services CMS.

DEPENDS ON: data_store.py
"""

import logging
from typing import List

from schemas import (
    Advert,
    AdvertInput,
    GalleryImage,
    GalleryImageInput,
    ServiceContent,
    ServiceContentInput,
)
from services.data_store import DataStore, Order, eq

logger = logging.getLogger(__name__)

ADVERTS = "adverts"
GALLERY = "gallery"
SERVICES = "services"

GALLERY_LIMIT = 100


class ContentService:

    def __init__(self, store: DataStore):
        self.store = store

    # === ADVERTS ===

    async def list_adverts(self, active_only: bool = False) -> List[Advert]:
        filters = [eq("active", True)] if active_only else []
        rows, _ = await self.store.select(ADVERTS, filters, order=Order("created_at", descending=True))
        return [Advert.model_validate(r) for r in rows]

    async def add_advert(self, data: AdvertInput) -> Advert:
        row = await self.store.insert(ADVERTS, data.model_dump())
        logger.info(f"Advert '{data.title}' added")
        return Advert.model_validate(row)

    async def update_advert(self, advert_id: str, data: AdvertInput) -> Advert:
        row = await self.store.update(ADVERTS, advert_id, data.model_dump())
        return Advert.model_validate(row)

    async def delete_advert(self, advert_id: str) -> None:
        await self.store.delete(ADVERTS, advert_id)

    # === GALLERY ===

    async def list_gallery(self) -> List[GalleryImage]:
        rows, _ = await self.store.select(
            GALLERY, order=Order("created_at", descending=True), limit=GALLERY_LIMIT
        )
        return [GalleryImage.model_validate(r) for r in rows]

    async def add_gallery_image(self, data: GalleryImageInput) -> GalleryImage:
        row = await self.store.insert(GALLERY, data.model_dump())
        return GalleryImage.model_validate(row)

    async def delete_gallery_image(self, image_id: str) -> None:
        await self.store.delete(GALLERY, image_id)

    # === SERVICES CMS ===

    async def list_services(self) -> List[ServiceContent]:
        """Oldest first, so the public site keeps a stable order."""
        rows, _ = await self.store.select(SERVICES, order=Order("created_at"))
        return [ServiceContent.model_validate(r) for r in rows]

    async def add_service(self, data: ServiceContentInput) -> ServiceContent:
        row = await self.store.insert(SERVICES, data.model_dump())
        logger.info(f"Service '{data.title}' added")
        return ServiceContent.model_validate(row)

    async def update_service(self, service_id: str, data: ServiceContentInput) -> ServiceContent:
        row = await self.store.update(SERVICES, service_id, data.model_dump())
        return ServiceContent.model_validate(row)

    async def delete_service(self, service_id: str) -> None:
        await self.store.delete(SERVICES, service_id)
