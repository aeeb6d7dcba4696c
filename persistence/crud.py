"""
Thin data-access layer over the record store.

Every call either returns rows or raises RemoteReadFailed / RemoteWriteFailed,
so callers never see a raw SQLAlchemyError. Each write commits on its own;
nothing here wraps several writes into one transaction.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from booking_schemas import (
    Booking,
    BusRoute,
    CabType,
    HotelListing,
    Payment,
    Payout,
    Profile,
    Provider,
    TravelPackage,
)
from errors import RemoteReadFailed, RemoteWriteFailed, ValidationFailed
from .models import (
    BookingModel,
    BusModel,
    CabModel,
    HotelModel,
    PackageModel,
    PaymentModel,
    PayoutModel,
    ProfileModel,
    ServiceProviderModel,
    SettlementModel,
)

logger = logging.getLogger(__name__)

# booking_type -> the table that owns that kind of listing
LISTING_MODELS = {
    "hotel": HotelModel,
    "bus": BusModel,
    "cab": CabModel,
}

LISTING_SCHEMAS = {
    "hotel": HotelListing,
    "bus": BusRoute,
    "cab": CabType,
}

_SCHEMAS = {
    BookingModel: Booking,
    PaymentModel: Payment,
    PayoutModel: Payout,
    ProfileModel: Profile,
    ServiceProviderModel: Provider,
    PackageModel: TravelPackage,
    HotelModel: HotelListing,
    BusModel: BusRoute,
    CabModel: CabType,
}


@contextmanager
def reading(what: str):
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Store read failed (%s)", what, exc_info=True)
        raise RemoteReadFailed(f"Could not load {what}", cause=e) from e


@contextmanager
def writing(db: Session, what: str):
    try:
        yield
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Store write failed (%s)", what, exc_info=True)
        raise RemoteWriteFailed(f"Could not save {what}", cause=e) from e


def model_to_pydantic(row):
    """Convert any ORM row to its pydantic counterpart."""
    return _SCHEMAS[type(row)].model_validate(row)


def listing_model(kind: str):
    model = LISTING_MODELS.get(kind)
    if model is None:
        raise ValidationFailed(f"Unknown service type: {kind!r}")
    return model


# --- profiles / providers ---

def get_profile(db: Session, user_id: str) -> Optional[ProfileModel]:
    with reading("profile"):
        return db.get(ProfileModel, user_id)


def save_profile(db: Session, user_id: str, full_name: str, phone_number: Optional[str]) -> ProfileModel:
    with writing(db, "profile"):
        row = db.get(ProfileModel, user_id)
        if row is None:
            row = ProfileModel(id=user_id)
            db.add(row)
        row.full_name = full_name
        row.phone_number = phone_number
    return row


def get_provider(db: Session, provider_id: str) -> Optional[ServiceProviderModel]:
    with reading("service provider"):
        return db.get(ServiceProviderModel, provider_id)


def get_provider_by_profile(db: Session, profile_id: str) -> Optional[ServiceProviderModel]:
    with reading("service provider"):
        return db.scalars(
            select(ServiceProviderModel).where(ServiceProviderModel.profile_id == profile_id)
        ).first()


def create_provider(db: Session, profile_id: str, business_name: str) -> ServiceProviderModel:
    row = ServiceProviderModel(profile_id=profile_id, business_name=business_name)
    with writing(db, "service provider"):
        db.add(row)
    return row


# --- listings ---

def insert_listing(db: Session, kind: str, **fields):
    row = listing_model(kind)(**fields)
    with writing(db, f"{kind} listing"):
        db.add(row)
    return row


def get_listing(db: Session, kind: str, listing_id: str):
    model = listing_model(kind)
    with reading(f"{kind} listing"):
        return db.get(model, listing_id)


def update_listing(db: Session, row, changes: dict):
    with writing(db, "listing"):
        for key, value in changes.items():
            setattr(row, key, value)
    return row


def query_listings(db: Session, kind: str, *criteria) -> list:
    model = listing_model(kind)
    with reading(f"{kind} listings"):
        return list(db.scalars(select(model).where(*criteria)))


def listing_provider_id(db: Session, booking_type: str, service_id: str) -> Optional[str]:
    """Provider owning the booked listing, or None if the type is unknown or the listing is gone."""
    model = LISTING_MODELS.get(booking_type)
    if model is None:
        return None
    with reading(f"{booking_type} owner"):
        return db.scalar(select(model.provider_id).where(model.id == service_id))


def update_rating_if_unchanged(db: Session, kind: str, listing_id: str, expected_count: int,
                               rating: float, rating_count: int) -> bool:
    """
    Conditional write: only applies if nobody else rated since we read `expected_count`.
    Returns False when the row moved underneath us.
    """
    model = listing_model(kind)
    stmt = (
        update(model)
        .where(model.id == listing_id, model.rating_count == expected_count)
        .values(rating=rating, rating_count=rating_count)
    )
    with writing(db, f"{kind} rating"):
        result = db.execute(stmt)
    return result.rowcount == 1


def query_packages(db: Session, package_type: Optional[str] = None) -> List[PackageModel]:
    stmt = select(PackageModel)
    if package_type:
        stmt = stmt.where(PackageModel.type == package_type)
    with reading("packages"):
        return list(db.scalars(stmt))


# --- bookings ---

def insert_booking(db: Session, **fields) -> BookingModel:
    row = BookingModel(status="pending", payment_status="pending", **fields)
    with writing(db, "booking"):
        db.add(row)
    return row


def get_booking_by_id(db: Session, booking_id: str) -> Optional[BookingModel]:
    with reading("booking"):
        return db.get(BookingModel, booking_id)


def bookings_for_user(db: Session, user_id: str) -> List[BookingModel]:
    stmt = (
        select(BookingModel)
        .where(BookingModel.user_id == user_id)
        .order_by(BookingModel.created_at.desc())
    )
    with reading("bookings"):
        return list(db.scalars(stmt))


def bookings_for_services(db: Session, service_ids: Iterable[str]) -> List[BookingModel]:
    service_ids = list(service_ids)
    if not service_ids:
        return []
    with reading("bookings"):
        return list(db.scalars(select(BookingModel).where(BookingModel.service_id.in_(service_ids))))


def mark_booking_paid(db: Session, booking: BookingModel, transaction_id: str) -> BookingModel:
    with writing(db, "booking payment status"):
        booking.payment_status = "paid"
        booking.status = "confirmed"
        booking.payment_id = transaction_id
    return booking


def reset_booking_payment(db: Session, booking: BookingModel) -> BookingModel:
    with writing(db, "booking payment status"):
        booking.payment_status = "pending"
        booking.status = "pending"
        booking.payment_id = None
    return booking


# --- payments / payouts ---

def insert_payment(db: Session, **fields) -> PaymentModel:
    row = PaymentModel(status="completed", **fields)
    with writing(db, "payment"):
        db.add(row)
    return row


def mark_payment_failed(db: Session, payment_id: str) -> None:
    with writing(db, "payment status"):
        db.execute(update(PaymentModel).where(PaymentModel.id == payment_id).values(status="failed"))


def mark_payment_completed(db: Session, payment: PaymentModel) -> PaymentModel:
    with writing(db, "payment status"):
        payment.status = "completed"
    return payment


def payment_for_transaction(db: Session, booking_id: str, transaction_id: str) -> Optional[PaymentModel]:
    stmt = select(PaymentModel).where(
        PaymentModel.booking_id == booking_id, PaymentModel.gateway_payment_id == transaction_id
    )
    with reading("payment"):
        return db.scalars(stmt).first()


def payments_for_booking(db: Session, booking_id: str) -> List[PaymentModel]:
    with reading("payments"):
        return list(db.scalars(select(PaymentModel).where(PaymentModel.booking_id == booking_id)))


def payments_for_bookings(db: Session, booking_ids: Iterable[str]) -> List[PaymentModel]:
    booking_ids = list(booking_ids)
    if not booking_ids:
        return []
    with reading("payments"):
        return list(db.scalars(select(PaymentModel).where(PaymentModel.booking_id.in_(booking_ids))))


def insert_payout(db: Session, provider_id: str, amount, transaction_id: Optional[str] = None) -> PayoutModel:
    row = PayoutModel(provider_id=provider_id, amount=amount, status="pending", transaction_id=transaction_id)
    with writing(db, "payout"):
        db.add(row)
    return row


def payout_for_transaction(db: Session, transaction_id: str) -> Optional[PayoutModel]:
    with reading("payout"):
        return db.scalars(select(PayoutModel).where(PayoutModel.transaction_id == transaction_id)).first()


def payouts_for_provider(db: Session, provider_id: str, status: Optional[str] = None) -> List[PayoutModel]:
    stmt = select(PayoutModel).where(PayoutModel.provider_id == provider_id)
    if status:
        stmt = stmt.where(PayoutModel.status == status)
    with reading("payouts"):
        return list(db.scalars(stmt))


def complete_pending_payouts(db: Session, provider_id: str, payout_id: Optional[str] = None) -> int:
    stmt = (
        update(PayoutModel)
        .where(PayoutModel.provider_id == provider_id, PayoutModel.status == "pending")
        .values(status="completed")
    )
    if payout_id is not None:
        stmt = stmt.where(PayoutModel.id == payout_id)
    with writing(db, "payouts"):
        result = db.execute(stmt)
    return result.rowcount


# --- settlement progress ---

def get_settlement(db: Session, transaction_id: str) -> Optional[SettlementModel]:
    with reading("settlement"):
        return db.scalars(
            select(SettlementModel).where(SettlementModel.transaction_id == transaction_id)
        ).first()


def start_settlement(db: Session, **fields) -> Tuple[SettlementModel, bool]:
    """
    Insert the progress row and return `(row, True)`. If a concurrent delivery
    of the same callback got there first, return `(its_row, False)` instead.
    """
    row = SettlementModel(status="in_progress", steps_done=0, **fields)
    try:
        db.add(row)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Settlement for %s already started elsewhere", fields.get("transaction_id"))
        return get_settlement(db, fields["transaction_id"]), False
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Store write failed (settlement)", exc_info=True)
        raise RemoteWriteFailed("Could not save settlement", cause=e) from e
    return row, True


def save_settlement(db: Session, record: SettlementModel, **changes) -> SettlementModel:
    with writing(db, "settlement progress"):
        for key, value in changes.items():
            setattr(record, key, value)
    return record
