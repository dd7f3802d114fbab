"""
Test Configuration and Fixtures
Version: 12.0
"""

import os

# Must be set before config.py is imported anywhere
os.environ["APP_ENV"] = "test"
os.environ["DATA_BACKEND"] = "memory"
os.environ["OUTBOX_BACKEND"] = "log"
os.environ.pop("BACKOFFICE_API_KEY", None)

from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from schemas import BusinessSettings
from services.container import build_services
from services.data_store import MemoryDataStore
from services.notifications import LogOutbox


# ============================================================================
# MOCK FIXTURES
# ============================================================================

@pytest.fixture
def mock_redis():
    """Mock Redis client."""
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.rpush = AsyncMock(return_value=1)
    redis.blpop = AsyncMock(return_value=None)
    redis.lrange = AsyncMock(return_value=[])
    redis.aclose = AsyncMock()
    return redis


# ============================================================================
# SERVICE FIXTURES
# ============================================================================

@pytest.fixture
def store():
    return MemoryDataStore()


@pytest.fixture
def outbox():
    return LogOutbox()


@pytest.fixture
def services(store, outbox):
    return build_services(store, outbox, portal_url="https://portal.example.sc")


@pytest.fixture
def save_settings(services):
    """Persist business settings with the given overrides."""
    async def _save(**overrides) -> BusinessSettings:
        return await services.settings.save(BusinessSettings(**overrides))
    return _save


# ============================================================================
# SAMPLE DATA
# ============================================================================

def future_time(days: int = 7, hour: int = 9) -> datetime:
    moment = datetime.now(timezone.utc) + timedelta(days=days)
    return moment.replace(hour=hour, minute=30, second=0, microsecond=0)


@pytest.fixture
def booking_data() -> Dict[str, Any]:
    """Valid public booking form payload (camelCase, as sent by the site)."""
    return {
        "clientName": "Marie Laporte",
        "email": "  Marie.Laporte@Example.com ",
        "phone": "+248 2512345",
        "serviceType": "TRANSFER",
        "pickupLocation": "Mahe International Airport",
        "dropoffLocation": "Beau Vallon Hotel",
        "pickupTime": future_time().isoformat(),
        "pax": 2,
        "notes": "<b>Late</b> flight",
    }
