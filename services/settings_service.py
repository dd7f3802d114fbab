"""
Business Settings Service
Version: 1.1

Singleton business configuration (row id=1).
Reads never fail: missing fields, a missing row or a store error all fall
back to the defaults so pricing and tax math keep working.
DEPENDS ON: data_store.py, schemas.py
"""

import logging

from schemas import BusinessSettings
from services.data_store import DataStore

logger = logging.getLogger(__name__)

TABLE = "business_settings"
SETTINGS_ROW_ID = 1

DEFAULT_SETTINGS = BusinessSettings()

# Text fields where an empty string also means "use the default"
_FALLBACK_WHEN_EMPTY = (
    "payment_instructions",
    "hero_image_url",
    "login_hero_image_url",
    "login_title",
    "login_message",
)


def settings_from_row(row: dict) -> BusinessSettings:
    values = {}
    for name in BusinessSettings.model_fields:
        value = row.get(name)
        if value is None:
            continue
        if name in _FALLBACK_WHEN_EMPTY and not value:
            continue
        values[name] = value
    return BusinessSettings(**values)


class BusinessSettingsService:
    """Load and save the business configuration."""

    def __init__(self, store: DataStore):
        self.store = store

    async def get(self) -> BusinessSettings:
        try:
            row = await self.store.get(TABLE, SETTINGS_ROW_ID)
            if row:
                return settings_from_row(row)
        except Exception as e:
            logger.error(f"Settings fetch failed, using defaults: {e}")
        return DEFAULT_SETTINGS.model_copy()

    async def save(self, settings: BusinessSettings) -> BusinessSettings:
        """Last write wins. Creates the row on first save."""
        payload = settings.model_dump(mode="json")
        payload["id"] = SETTINGS_ROW_ID
        await self.store.upsert(TABLE, [payload])
        logger.info("Business settings saved")
        return settings
