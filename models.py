"""
Database Models
Version: 1.2

SQLAlchemy tables mirroring the managed Postgres schema.
Column names are snake_case and must stay compatible with the existing store.
DEPENDS ON: database.py, schemas.py (utcnow)
"""

import uuid

from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Text,
    Integer,
    Numeric,
    ForeignKey,
    Index,
    JSON
)
from sqlalchemy.dialects.postgresql import UUID

from database import Base
from schemas import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


def money_column(**kwargs) -> Column:
    return Column(Numeric(12, 2, asdecimal=False), **kwargs)


class BusinessSettingsRow(Base):
    """Process-wide singleton configuration (always id=1)."""

    __tablename__ = "business_settings"

    id = Column(Integer, primary_key=True, default=1)
    name = Column(String(200), nullable=True)
    tagline = Column(String(200), nullable=True)
    email = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(300), nullable=True)
    about = Column(Text, nullable=True)
    vat_rate = Column(Numeric(6, 4, asdecimal=False), nullable=True)
    eur_rate = Column(Numeric(10, 4, asdecimal=False), nullable=True)
    usd_rate = Column(Numeric(10, 4, asdecimal=False), nullable=True)
    default_transfer_price = money_column(nullable=True)
    default_tour_price = money_column(nullable=True)
    show_vat_breakdown = Column(Boolean, nullable=True)
    auto_create_invoice = Column(Boolean, nullable=True)
    enable_email_notifications = Column(Boolean, nullable=True)
    payment_instructions = Column(Text, nullable=True)
    hero_image_url = Column(Text, nullable=True)
    logo_url = Column(Text, nullable=True)
    login_hero_image_url = Column(Text, nullable=True)
    login_title = Column(Text, nullable=True)
    login_message = Column(Text, nullable=True)


class ProfileRow(Base):
    """User profile linked to an auth account."""

    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=False), primary_key=True, default=new_id)
    email = Column(String(200), nullable=True, index=True)
    name = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(300), nullable=True)
    company = Column(String(200), nullable=True)
    nationality = Column(String(100), nullable=True)
    vat_number = Column(String(100), nullable=True)
    role = Column(String(20), default="CLIENT")
    created_at = Column(DateTime(timezone=True), default=utcnow)


class BookingRow(Base):
    """Reservation request."""

    __tablename__ = "bookings"

    id = Column(UUID(as_uuid=False), primary_key=True, default=new_id)
    client_id = Column(UUID(as_uuid=False), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    client_name = Column(String(200), nullable=False)
    email = Column(String(200), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    service_type = Column(String(20), nullable=False)
    pickup_location = Column(String(300), nullable=False)
    dropoff_location = Column(String(300), nullable=False)
    pickup_time = Column(DateTime(timezone=True), nullable=False)
    pax = Column(Integer, default=1)
    status = Column(String(20), default="PENDING")
    amount = money_column(default=0)
    currency = Column(String(3), default="SCR")
    notes = Column(Text, nullable=True)
    history = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_bookings_pickup_status", "pickup_time", "status"),
    )


class InvoiceRow(Base):
    """Billing document. booking_id is a plain reference, not a constraint."""

    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=False), primary_key=True, default=new_id)
    booking_id = Column(UUID(as_uuid=False), nullable=True, index=True)
    client_name = Column(String(200), nullable=True)
    date = Column(DateTime(timezone=True), default=utcnow)
    subtotal = money_column(default=0)
    tax_amount = money_column(default=0)
    total = money_column(default=0)
    paid = Column(Boolean, default=False)
    currency = Column(String(3), default="SCR")
    items = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class ExpenseRow(Base):
    """Operational cost record."""

    __tablename__ = "expenses"

    id = Column(UUID(as_uuid=False), primary_key=True, default=new_id)
    date = Column(DateTime(timezone=True), default=utcnow)
    category = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    amount = money_column(default=0)
    currency = Column(String(3), default="SCR")
    vat_included = Column(Boolean, default=False)
    vat_amount = money_column(default=0)
    reference = Column(String(200), nullable=True)
    booking_id = Column(UUID(as_uuid=False), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class AdvertRow(Base):
    __tablename__ = "adverts"

    id = Column(UUID(as_uuid=False), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    price = Column(String(100), nullable=True)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class GalleryRow(Base):
    __tablename__ = "gallery"

    id = Column(UUID(as_uuid=False), primary_key=True, default=new_id)
    image_url = Column(Text, nullable=False)
    caption = Column(String(300), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class ServiceRow(Base):
    """Services CMS entry shown on the public site."""

    __tablename__ = "services"

    id = Column(UUID(as_uuid=False), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(100), nullable=True)
    price = Column(String(100), nullable=True)
    show_price = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
