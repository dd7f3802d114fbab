"""
Service Container
Version: 1.0

Wires the service layer around one DataStore and one Outbox.
main.py builds it in the lifespan; tests build it around a MemoryDataStore.
"""

from dataclasses import dataclass
from typing import Optional

from services.backup_service import BackupService
from services.blob_storage import BlobStorage
from services.booking_service import BookingService
from services.content_service import ContentService
from services.data_store import DataStore
from services.finance_service import FinanceService
from services.notifications import Notifier, Outbox
from services.report_service import ReportService
from services.settings_service import BusinessSettingsService
from services.user_service import UserService


@dataclass
class Services:
    store: DataStore
    outbox: Outbox
    settings: BusinessSettingsService
    notifier: Notifier
    finance: FinanceService
    bookings: BookingService
    reports: ReportService
    content: ContentService
    users: UserService
    backup: BackupService
    blob_storage: Optional[BlobStorage] = None

    async def close(self) -> None:
        await self.outbox.close()
        if self.blob_storage:
            await self.blob_storage.close()


def build_services(
    store: DataStore,
    outbox: Outbox,
    blob_storage: Optional[BlobStorage] = None,
    portal_url: str = "",
    report_timezone: str = "UTC"
) -> Services:
    settings_service = BusinessSettingsService(store)
    notifier = Notifier(outbox, settings_service, portal_url)
    finance = FinanceService(store, settings_service, notifier)

    return Services(
        store=store,
        outbox=outbox,
        settings=settings_service,
        notifier=notifier,
        finance=finance,
        bookings=BookingService(store, settings_service, notifier, finance),
        reports=ReportService(store, report_timezone),
        content=ContentService(store),
        users=UserService(store),
        backup=BackupService(store),
        blob_storage=blob_storage,
    )
