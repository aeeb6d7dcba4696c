"""Provider-side listing management: add, edit and review hotels, buses and cabs."""

import logging
from datetime import time
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session

from accounts import provider_for
from booking_schemas import Booking, Payment, Payout, UserSession
from booking_tools import money
from errors import AuthRequired, NotFound, ValidationFailed
from persistence import crud

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "hotel": {"name", "location", "description", "price_per_night", "amenities", "images"},
    "bus": {"operator", "source", "destination", "departure_time", "arrival_time", "price", "available_seats"},
    "cab": {"vehicle_type", "base_price", "price_per_km", "available"},
}

PRICE_FIELDS = {"price_per_night", "price", "base_price", "price_per_km"}
TEXT_FIELDS = {"name", "location", "operator", "source", "destination", "vehicle_type"}


def _price(value, field: str) -> Decimal:
    try:
        amount = money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationFailed(f"{field} must be a number")
    if amount <= 0:
        raise ValidationFailed(f"{field} must be greater than zero")
    return amount


def _text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed(f"{field} is required")
    return value.strip()


def _clean(fields: dict) -> dict:
    cleaned = {}
    for key, value in fields.items():
        if key in PRICE_FIELDS:
            value = _price(value, key)
        elif key in TEXT_FIELDS:
            value = _text(value, key)
        elif key == "available_seats":
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationFailed("available_seats must be a non-negative whole number")
        elif key in ("departure_time", "arrival_time") and not isinstance(value, time):
            raise ValidationFailed(f"{key} must be a time of day")
        cleaned[key] = value
    return cleaned


def add_hotel(db: Session, session: Optional[UserSession], name: str, location: str, price_per_night,
              description: str = "", amenities: List[str] = None, images: List[str] = None):
    provider = provider_for(db, session)
    fields = _clean({"name": name, "location": location, "price_per_night": price_per_night})
    row = crud.insert_listing(
        db, "hotel", provider_id=provider.id, description=description or "",
        amenities=list(amenities or []), images=list(images or []), rating=0.0, rating_count=0, **fields
    )
    logger.info("Provider %s added hotel %s", provider.id, row.id)
    return crud.model_to_pydantic(row)


def add_bus(db: Session, session: Optional[UserSession], operator: str, source: str, destination: str,
            departure_time: time, arrival_time: time, price, available_seats: int):
    provider = provider_for(db, session)
    fields = _clean({
        "operator": operator, "source": source, "destination": destination,
        "departure_time": departure_time, "arrival_time": arrival_time,
        "price": price, "available_seats": available_seats,
    })
    row = crud.insert_listing(db, "bus", provider_id=provider.id, rating=0.0, rating_count=0, **fields)
    logger.info("Provider %s added bus route %s", provider.id, row.id)
    return crud.model_to_pydantic(row)


def add_cab(db: Session, session: Optional[UserSession], vehicle_type: str, base_price, price_per_km):
    provider = provider_for(db, session)
    fields = _clean({"vehicle_type": vehicle_type, "base_price": base_price, "price_per_km": price_per_km})
    row = crud.insert_listing(db, "cab", provider_id=provider.id, available=True,
                              rating=0.0, rating_count=0, **fields)
    logger.info("Provider %s added cab %s", provider.id, row.id)
    return crud.model_to_pydantic(row)


def _owned_listing(db: Session, session: Optional[UserSession], kind: str, listing_id: str):
    provider = provider_for(db, session)
    row = crud.get_listing(db, kind, listing_id)
    if row is None:
        raise NotFound(f"{kind} {listing_id} not found")
    if row.provider_id != provider.id:
        raise AuthRequired(f"{kind} {listing_id} belongs to another provider")
    return row


def update_listing(db: Session, session: Optional[UserSession], kind: str, listing_id: str, changes: dict):
    row = _owned_listing(db, session, kind, listing_id)
    unknown = set(changes) - EDITABLE_FIELDS[kind]
    if unknown:
        raise ValidationFailed(f"Cannot edit {', '.join(sorted(unknown))} on a {kind}")
    row = crud.update_listing(db, row, _clean(changes))
    logger.info("Updated %s %s: %s", kind, listing_id, sorted(changes))
    return crud.model_to_pydantic(row)


def provider_services(db: Session, session: Optional[UserSession]) -> list:
    provider = provider_for(db, session)
    services = []
    for kind in ("hotel", "bus", "cab"):
        model = crud.listing_model(kind)
        rows = crud.query_listings(db, kind, model.provider_id == provider.id)
        services.extend(crud.model_to_pydantic(r) for r in rows)
    return services


def service_bookings(db: Session, session: Optional[UserSession], service_id: str) -> List[Booking]:
    owned = {s.id for s in provider_services(db, session)}
    if service_id not in owned:
        raise NotFound(f"Service {service_id} is not one of yours")
    return [crud.model_to_pydantic(r) for r in crud.bookings_for_services(db, [service_id])]


def provider_payments(db: Session, session: Optional[UserSession]) -> List[Payment]:
    """Payments received against any of the provider's services."""
    service_ids = [s.id for s in provider_services(db, session)]
    bookings = crud.bookings_for_services(db, service_ids)
    payments = crud.payments_for_bookings(db, [b.id for b in bookings])
    return [crud.model_to_pydantic(p) for p in payments]


def provider_payouts(db: Session, session: Optional[UserSession], status: str = None) -> List[Payout]:
    provider = provider_for(db, session)
    return [crud.model_to_pydantic(p) for p in crud.payouts_for_provider(db, provider.id, status)]
