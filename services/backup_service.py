"""
Backup Service
Version: 1.1

Full JSON export and restore of every back-office table.

Format:
    {"version": "1.1", "timestamp": ISO-8601, "tables": {name: [row, ...]}}

Restore runs in dependency order and upserts by primary key:
1. business_settings, adverts, gallery, services
2. profiles (failures logged and ignored; auth accounts may be missing)
3. bookings, client_id nulled when its profile does not exist
4. invoices, expenses

There is no transaction across tables: a failure part-way leaves the
tables restored so far in place.

DEPENDS ON: data_store.py, logging_config.py
"""

from typing import Any, Dict, List

from pydantic_core import to_jsonable_python

from schemas import utcnow
from services.data_store import DataStore
from services.errors import ValidationError
from services.logging_config import LogTimer, get_logger

logger = get_logger(__name__)

BACKUP_VERSION = "1.1"

INDEPENDENT_TABLES = ("business_settings", "adverts", "gallery", "services")
PROFILE_TABLE = "profiles"
BOOKING_TABLE = "bookings"
FINANCE_TABLES = ("invoices", "expenses")

BACKUP_TABLES = ("business_settings", "profiles", "bookings", "invoices", "expenses", "adverts", "gallery", "services")


def backup_file_name(backup: Dict[str, Any]) -> str:
    return f"kreol_backup_{str(backup.get('timestamp', ''))[:10]}.json"


class BackupService:

    def __init__(self, store: DataStore):
        self.store = store

    async def create_backup(self) -> Dict[str, Any]:
        tables: Dict[str, List[Dict[str, Any]]] = {}
        with LogTimer(logger, "Backup") as timer:
            for name in BACKUP_TABLES:
                rows, _ = await self.store.select(name)
                tables[name] = to_jsonable_python(rows)
            timer.note(rows=sum(len(r) for r in tables.values()))

        return {
            "version": BACKUP_VERSION,
            "timestamp": utcnow().isoformat(),
            "tables": tables,
        }

    async def restore_backup(self, data: Any) -> Dict[str, int]:
        """
        Restore a backup produced by create_backup.

        Returns:
            Rows written per table.

        Raises:
            ValidationError: payload without version or tables
        """
        if not isinstance(data, dict) or not data.get("version") or not isinstance(data.get("tables"), dict):
            raise ValidationError("Invalid backup file format")

        tables = data["tables"]
        restored: Dict[str, int] = {}

        with LogTimer(logger, "Restore", version=data["version"]) as timer:
            for name in INDEPENDENT_TABLES:
                restored[name] = await self._upsert(name, tables.get(name))

            profiles = tables.get(PROFILE_TABLE) or []
            if profiles:
                try:
                    restored[PROFILE_TABLE] = await self.store.upsert(PROFILE_TABLE, profiles)
                except Exception as e:
                    logger.warning("Profiles restore failed, continuing", error=str(e))
                    restored[PROFILE_TABLE] = 0

            existing, _ = await self.store.select(PROFILE_TABLE)
            valid_profiles = {str(p["id"]) for p in existing}

            bookings = []
            detached = 0
            for booking in tables.get(BOOKING_TABLE) or []:
                client_id = booking.get("client_id")
                if client_id and str(client_id) not in valid_profiles:
                    booking = {**booking, "client_id": None}
                    detached += 1
                bookings.append(booking)
            if detached:
                logger.info("Detached bookings from missing profiles", count=detached)
            restored[BOOKING_TABLE] = await self._upsert(BOOKING_TABLE, bookings)

            for name in FINANCE_TABLES:
                restored[name] = await self._upsert(name, tables.get(name))

            timer.note(rows=sum(restored.values()))

        return restored

    async def _upsert(self, table: str, rows) -> int:
        if not rows:
            return 0
        if not isinstance(rows, list):
            raise ValidationError(f"Invalid backup data for table {table}")
        return await self.store.upsert(table, rows)
