"""
Pydantic Schemas
Version: 1.2

Domain models and request payloads. Python attributes are snake_case and
serialize to camelCase for the front end; rows from the store validate
directly because populate_by_name is on.
NO DEPENDENCIES on services.
"""

import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


# === ENUMS ===

class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    CLIENT = "CLIENT"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ServiceType(str, Enum):
    TRANSFER = "TRANSFER"
    TOUR = "TOUR"
    CHARTER = "CHARTER"


class CurrencyCode(str, Enum):
    SCR = "SCR"
    EUR = "EUR"
    USD = "USD"


class HistoryAction(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGE = "STATUS_CHANGE"
    REVERTED = "REVERTED"


class ExpenseCategory(str, Enum):
    FUEL = "FUEL"
    MAINTENANCE = "MAINTENANCE"
    SALARY = "SALARY"
    MARKETING = "MARKETING"
    OFFICE = "OFFICE"
    LICENSES = "LICENSES"
    OTHER = "OTHER"


# === HELPERS ===

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _number_or_zero(value: Any) -> Any:
    return 0 if value is None else value


def _currency_or_default(value: Any) -> Any:
    return value or CurrencyCode.SCR


def _false_if_missing(value: Any) -> Any:
    return bool(value)


def _list_or_empty(value: Any) -> Any:
    return value or []


# Store rows may carry NULLs; these read them back the way the front end expects
Amount = Annotated[float, BeforeValidator(_number_or_zero)]
Currency = Annotated[CurrencyCode, BeforeValidator(_currency_or_default)]
Flag = Annotated[bool, BeforeValidator(_false_if_missing)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# === BOOKINGS ===

class BookingHistoryEntry(CamelModel):
    timestamp: datetime = Field(default_factory=utcnow)
    action: HistoryAction
    details: str = ""
    actor: str = Field(default="System", alias="user")
    previous_state: Optional[Dict[str, Any]] = None


class Booking(CamelModel):
    id: str
    client_id: Optional[str] = None
    client_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    service_type: ServiceType
    pickup_location: str
    dropoff_location: str
    pickup_time: datetime
    pax: int = 1
    status: BookingStatus = BookingStatus.PENDING
    amount: Amount = 0
    currency: Currency = CurrencyCode.SCR
    notes: Optional[str] = None
    history: Annotated[List[BookingHistoryEntry], BeforeValidator(_list_or_empty)] = Field(default_factory=list)


class BookingInput(CamelModel):
    """Public booking form payload."""

    client_name: str = Field(..., min_length=2)
    email: str
    phone: Optional[str] = None
    service_type: ServiceType
    pickup_location: str = Field(..., min_length=3)
    dropoff_location: str = Field(..., min_length=3)
    pickup_time: datetime
    pax: int = Field(..., ge=1)
    amount: Optional[float] = None
    currency: Optional[CurrencyCode] = None
    notes: Optional[str] = None
    status: Optional[BookingStatus] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v.strip()):
            raise ValueError("Invalid email address")
        return v

    @field_validator("pickup_time")
    @classmethod
    def validate_future(cls, v: datetime) -> datetime:
        v = as_aware(v)
        if v <= utcnow():
            raise ValueError("Pickup time must be in the future")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def nan_is_missing(cls, v):
        if isinstance(v, float) and math.isnan(v):
            return None
        if v == "":
            return None
        return v


class BookingPatch(CamelModel):
    """Sparse edit of booking details. Only fields that are set are written."""

    client_name: Optional[str] = Field(None, min_length=2)
    email: Optional[str] = None
    phone: Optional[str] = None
    service_type: Optional[ServiceType] = None
    pax: Optional[int] = Field(None, ge=1)
    amount: Optional[float] = None
    currency: Optional[CurrencyCode] = None
    pickup_time: Optional[datetime] = None
    pickup_location: Optional[str] = Field(None, min_length=3)
    dropoff_location: Optional[str] = Field(None, min_length=3)
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not EMAIL_PATTERN.match(v.strip()):
            raise ValueError("Invalid email address")
        return v


class StatusUpdate(CamelModel):
    status: BookingStatus
    price: Optional[float] = None


# === INVOICES ===

class InvoiceItem(CamelModel):
    id: str
    description: str = ""
    quantity: Amount = 0
    unit_price: Amount = 0
    total: Amount = 0


class Invoice(CamelModel):
    id: str
    booking_id: Optional[str] = None
    client_name: Optional[str] = None
    date: datetime
    subtotal: Amount = 0
    tax_amount: Amount = 0
    total: Amount = 0
    paid: Flag = False
    currency: Currency = CurrencyCode.SCR
    items: Annotated[List[InvoiceItem], BeforeValidator(_list_or_empty)] = Field(default_factory=list)


class InvoiceItemInput(CamelModel):
    id: Optional[str] = None
    description: str = "Service Item"
    quantity: float = 1
    unit_price: float = 0


class InvoiceCreate(CamelModel):
    """Manual invoice: either a total or an itemized list."""

    booking_id: Optional[str] = None
    client_name: str = Field(..., min_length=1)
    date: Optional[datetime] = None
    total: float = 0
    paid: bool = False
    currency: CurrencyCode = CurrencyCode.SCR
    items: List[InvoiceItemInput] = Field(default_factory=list)


class InvoicePatch(CamelModel):
    client_name: Optional[str] = None
    date: Optional[datetime] = None
    subtotal: Optional[float] = None
    tax_amount: Optional[float] = None
    total: Optional[float] = None
    paid: Optional[bool] = None
    currency: Optional[CurrencyCode] = None
    items: Optional[List[InvoiceItemInput]] = None


# === EXPENSES ===

class Expense(CamelModel):
    id: str
    date: datetime
    category: ExpenseCategory
    description: Optional[str] = None
    amount: Amount = 0
    currency: Currency = CurrencyCode.SCR
    vat_included: Flag = False
    vat_amount: Amount = 0
    reference: Optional[str] = None
    booking_id: Optional[str] = None


class ExpenseInput(CamelModel):
    """vat_amount is derived, never accepted from the caller."""

    date: datetime
    category: ExpenseCategory
    description: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    currency: CurrencyCode = CurrencyCode.SCR
    vat_included: bool = False
    reference: Optional[str] = None
    booking_id: Optional[str] = None
    add_to_invoice: bool = False


class ExpensePatch(CamelModel):
    date: Optional[datetime] = None
    category: Optional[ExpenseCategory] = None
    description: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[CurrencyCode] = None
    vat_included: Optional[bool] = None
    reference: Optional[str] = None
    booking_id: Optional[str] = None


# === FINANCE / REPORTS ===

class FinancialStats(CamelModel):
    total_revenue: float = 0
    total_output_tax: float = 0
    total_expenses: float = 0
    total_input_tax: float = 0
    vat_payable: float = 0
    net_profit: float = 0
    pending_invoices: int = 0


class FinancialSummary(CamelModel):
    total_revenue: float = 0
    total_paid_revenue: float = 0
    total_pending_revenue: float = 0
    total_expenses: float = 0
    net_profit: float = 0


class FinancialReport(CamelModel):
    invoices: List[Invoice] = Field(default_factory=list)
    expenses: List[Expense] = Field(default_factory=list)
    summary: FinancialSummary = Field(default_factory=FinancialSummary)


class BookingPage(CamelModel):
    data: List[Booking] = Field(default_factory=list)
    count: int = 0


class InvoicePage(CamelModel):
    data: List[Invoice] = Field(default_factory=list)
    count: int = 0


class BookingStats(CamelModel):
    pending: int = 0
    confirmed: int = 0


class BookingOption(CamelModel):
    """Lightweight booking row for invoice and expense pickers."""

    id: str
    client_name: Optional[str] = None
    amount: Amount = 0
    status: BookingStatus = BookingStatus.PENDING
    pickup_time: Optional[datetime] = None
    email: Optional[str] = None
    currency: Currency = CurrencyCode.SCR


# === SETTINGS & CONTENT ===

class BusinessSettings(CamelModel):
    name: str = "Kreol Island Tours"
    tagline: str = "Experience Seychelles"
    email: str = "info@kreol.sc"
    phone: str = "+248 123456"
    address: str = "Victoria, Mahe"
    about: str = "About us..."
    vat_rate: float = 0.15
    eur_rate: float = 15.2
    usd_rate: float = 14.1
    default_transfer_price: float = 1200
    default_tour_price: float = 3000
    show_vat_breakdown: bool = True
    auto_create_invoice: bool = False
    enable_email_notifications: bool = True
    payment_instructions: Optional[str] = (
        "Please make transfer to:\nBank: MCB Seychelles\nAccount: 0000000000"
    )
    hero_image_url: Optional[str] = ""
    logo_url: Optional[str] = ""
    login_hero_image_url: Optional[str] = ""
    login_title: Optional[str] = (
        "Experience the Seychelles with the comfort and reliability you deserve."
    )
    login_message: Optional[str] = (
        "Manage your transfers, tours, and itinerary all in one place."
    )


class Advert(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[str] = None
    active: bool = True


class AdvertInput(CamelModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[str] = None
    active: bool = True


class GalleryImage(CamelModel):
    id: str
    image_url: str
    caption: Optional[str] = None


class GalleryImageInput(CamelModel):
    image_url: str = Field(..., min_length=1)
    caption: Optional[str] = None


class ServiceContent(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    icon: Optional[str] = None
    price: Optional[str] = None
    show_price: Flag = False


class ServiceContentInput(CamelModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    icon: Optional[str] = None
    price: Optional[str] = None
    show_price: bool = False


# === USERS ===

class UserProfile(CamelModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None
    nationality: Optional[str] = None
    vat_number: Optional[str] = None
    role: UserRole = UserRole.CLIENT
    created_at: Optional[datetime] = None


class ProfilePatch(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None
    nationality: Optional[str] = None
    vat_number: Optional[str] = None


class RoleUpdate(CamelModel):
    role: UserRole
