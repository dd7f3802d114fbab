"""
Administration Router
Version: 1.0

Business settings, site content, image uploads, users and backups.
Settings, users and backup/restore are admin-only.
"""
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from schemas import (
    Advert,
    AdvertInput,
    BusinessSettings,
    GalleryImage,
    GalleryImageInput,
    ProfilePatch,
    RoleUpdate,
    ServiceContent,
    ServiceContentInput,
    UserProfile,
)
from security import SessionContext, require_admin
from services.backup_service import backup_file_name
from services.container import Services
from routers.deps import get_services

router = APIRouter()
logger = structlog.get_logger("admin")


# === SETTINGS ===

@router.get("/settings", response_model=BusinessSettings)
async def get_settings_admin(services: Services = Depends(get_services)):
    return await services.settings.get()


@router.put("/settings", response_model=BusinessSettings, dependencies=[Depends(require_admin)])
async def save_settings(payload: BusinessSettings, services: Services = Depends(get_services)):
    return await services.settings.save(payload)


# === ADVERTS ===

@router.get("/adverts", response_model=List[Advert])
async def list_adverts(services: Services = Depends(get_services)):
    return await services.content.list_adverts()


@router.post("/adverts", response_model=Advert, status_code=status.HTTP_201_CREATED)
async def add_advert(payload: AdvertInput, services: Services = Depends(get_services)):
    return await services.content.add_advert(payload)


@router.put("/adverts/{advert_id}", response_model=Advert)
async def update_advert(advert_id: str, payload: AdvertInput, services: Services = Depends(get_services)):
    return await services.content.update_advert(advert_id, payload)


@router.delete("/adverts/{advert_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_advert(advert_id: str, services: Services = Depends(get_services)):
    await services.content.delete_advert(advert_id)


# === GALLERY ===

@router.get("/gallery", response_model=List[GalleryImage])
async def list_gallery(services: Services = Depends(get_services)):
    return await services.content.list_gallery()


@router.post("/gallery", response_model=GalleryImage, status_code=status.HTTP_201_CREATED)
async def add_gallery_image(payload: GalleryImageInput, services: Services = Depends(get_services)):
    return await services.content.add_gallery_image(payload)


@router.delete("/gallery/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_gallery_image(image_id: str, services: Services = Depends(get_services)):
    await services.content.delete_gallery_image(image_id)


# === SERVICES CMS ===

@router.get("/services", response_model=List[ServiceContent])
async def list_services(services: Services = Depends(get_services)):
    return await services.content.list_services()


@router.post("/services", response_model=ServiceContent, status_code=status.HTTP_201_CREATED)
async def add_service(payload: ServiceContentInput, services: Services = Depends(get_services)):
    return await services.content.add_service(payload)


@router.put("/services/{service_id}", response_model=ServiceContent)
async def update_service(service_id: str, payload: ServiceContentInput, services: Services = Depends(get_services)):
    return await services.content.update_service(service_id, payload)


@router.delete("/services/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service(service_id: str, services: Services = Depends(get_services)):
    await services.content.delete_service(service_id)


# === IMAGES ===

@router.post("/images", status_code=status.HTTP_201_CREATED)
async def upload_image(request: Request, services: Services = Depends(get_services)):
    """Raw image body; Content-Type selects the file extension."""
    if services.blob_storage is None:
        raise HTTPException(status_code=503, detail="Storage not configured")
    data = await request.body()
    url = await services.blob_storage.upload(data, request.headers.get("Content-Type", ""))
    return {"url": url}


# === USERS ===

@router.get("/users", response_model=List[UserProfile], dependencies=[Depends(require_admin)])
async def list_users(services: Services = Depends(get_services)):
    return await services.users.list_users()


@router.patch("/users/{user_id}/role", response_model=UserProfile)
async def update_user_role(
    user_id: str,
    payload: RoleUpdate,
    session: SessionContext = Depends(require_admin),
    services: Services = Depends(get_services)
):
    profile = await services.users.update_role(user_id, payload.role)
    logger.info("Role changed", user_id=user_id, role=payload.role.value, actor=session.actor_id)
    return profile


@router.patch("/users/{user_id}", response_model=UserProfile, dependencies=[Depends(require_admin)])
async def update_user_profile(user_id: str, payload: ProfilePatch, services: Services = Depends(get_services)):
    return await services.users.update_profile(user_id, payload)


# === BACKUP ===

@router.get("/backup", dependencies=[Depends(require_admin)])
async def download_backup(services: Services = Depends(get_services)):
    backup = await services.backup.create_backup()
    return JSONResponse(
        content=backup,
        headers={"Content-Disposition": f'attachment; filename="{backup_file_name(backup)}"'}
    )


@router.post("/restore", dependencies=[Depends(require_admin)])
async def restore_backup(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services)
):
    restored = await services.backup.restore_backup(payload)
    return {"status": "restored", "tables": restored}
