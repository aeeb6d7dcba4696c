import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Time,
)

from .db import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileModel(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)  # same id as the auth user
    full_name = Column(String(128), default="")
    phone_number = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class ServiceProviderModel(Base):
    __tablename__ = "service_providers"

    id = Column(String(36), primary_key=True, default=new_id)
    profile_id = Column(String(36), ForeignKey("profiles.id"), unique=True, index=True)
    business_name = Column(String(128), default="")


class HotelModel(Base):
    __tablename__ = "hotels"

    id = Column(String(36), primary_key=True, default=new_id)
    provider_id = Column(String(36), ForeignKey("service_providers.id"), index=True)
    name = Column(String(128))
    location = Column(String(128), index=True)
    description = Column(Text, default="")
    price_per_night = Column(Numeric(12, 2))
    amenities = Column(JSON, default=list)
    images = Column(JSON, default=list)
    rating = Column(Float, default=0.0)
    rating_count = Column(Integer, default=0)


class BusModel(Base):
    __tablename__ = "buses"

    id = Column(String(36), primary_key=True, default=new_id)
    provider_id = Column(String(36), ForeignKey("service_providers.id"), index=True)
    operator = Column(String(128))
    source = Column(String(128), index=True)
    destination = Column(String(128), index=True)
    departure_time = Column(Time)
    arrival_time = Column(Time)
    price = Column(Numeric(12, 2))
    available_seats = Column(Integer, default=0)
    rating = Column(Float, default=0.0)
    rating_count = Column(Integer, default=0)


class CabModel(Base):
    __tablename__ = "cabs"

    id = Column(String(36), primary_key=True, default=new_id)
    provider_id = Column(String(36), ForeignKey("service_providers.id"), index=True)
    vehicle_type = Column(String(64))
    base_price = Column(Numeric(12, 2))
    price_per_km = Column(Numeric(12, 2))
    available = Column(Boolean, default=True)
    rating = Column(Float, default=0.0)
    rating_count = Column(Integer, default=0)


class PackageModel(Base):
    __tablename__ = "packages"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(128))
    type = Column(String(16), index=True)  # regular / premium / luxury
    description = Column(Text, default="")
    price = Column(Numeric(12, 2))
    duration_days = Column(Integer)
    inclusions = Column(JSON, default=list)


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), index=True)
    booking_type = Column(String(16))  # hotel / bus / cab
    service_id = Column(String(36), index=True)
    start_date = Column(DateTime)
    end_date = Column(DateTime, nullable=True)
    total_amount = Column(Numeric(12, 2))
    status = Column(String(16), default="pending")
    payment_status = Column(String(16), default="pending")
    payment_id = Column(String(128), nullable=True)  # gateway transaction id
    created_at = Column(DateTime(timezone=True), default=utcnow)


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), index=True)
    amount = Column(Numeric(12, 2))
    currency = Column(String(8))
    status = Column(String(16), default="completed")
    payment_method = Column(String(32))
    gateway_payment_id = Column(String(128), index=True)
    gateway_order_id = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class PayoutModel(Base):
    __tablename__ = "payouts"

    id = Column(String(36), primary_key=True, default=new_id)
    provider_id = Column(String(36), ForeignKey("service_providers.id"), index=True)
    amount = Column(Numeric(12, 2))
    status = Column(String(16), default="pending")
    # gateway transaction that produced this payout; None for manual payouts
    transaction_id = Column(String(128), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class SettlementModel(Base):
    """Progress of one settlement saga, keyed by the gateway transaction id."""

    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(String(128), unique=True, index=True)
    order_id = Column(String(128), nullable=True)
    booking_id = Column(String(36), index=True)
    amount = Column(Numeric(12, 2))
    currency = Column(String(8))
    status = Column(String(16), default="in_progress")  # in_progress / completed / compensated
    steps_done = Column(Integer, default=0)
    payment_id = Column(String(36), nullable=True)
    provider_id = Column(String(36), nullable=True)
    payout_id = Column(String(36), nullable=True)
    payout_amount = Column(Numeric(12, 2), nullable=True)
    meta = Column(JSON, default=dict)
