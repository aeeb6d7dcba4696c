"""
Catalog search for the booking pages.

All filters are optional, case-insensitive substring matches. No ordering or
paging beyond what the store returns. Store failures raise RemoteReadFailed,
so an empty list always means "nothing matched".
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from booking_schemas import BusRoute, CabType, HotelListing, TravelPackage
from persistence import crud
from persistence.models import BusModel, CabModel, HotelModel

logger = logging.getLogger(__name__)


def _contains(column, text: Optional[str]):
    if not text or not text.strip():
        return None
    return column.ilike(f"%{text.strip()}%")


def search_hotels(db: Session, location: str = None, check_in: Optional[date] = None,
                  check_out: Optional[date] = None) -> List[HotelListing]:
    # Stay dates are collected on the search form but hotels carry no
    # availability calendar, so they do not narrow the result.
    criteria = [c for c in (_contains(HotelModel.location, location),) if c is not None]
    rows = crud.query_listings(db, "hotel", *criteria)
    logger.info("Hotel search location=%r dates=%s..%s -> %d result(s)", location, check_in, check_out, len(rows))
    return [crud.model_to_pydantic(r) for r in rows]


def search_buses(db: Session, source: str = None, destination: str = None,
                 travel_date: Optional[date] = None) -> List[BusRoute]:
    criteria = [
        c for c in (
            _contains(BusModel.source, source),
            _contains(BusModel.destination, destination),
        ) if c is not None
    ]
    rows = crud.query_listings(db, "bus", *criteria)
    logger.info("Bus search %r -> %r on %s -> %d result(s)", source, destination, travel_date, len(rows))
    return [crud.model_to_pydantic(r) for r in rows]


def search_cabs(db: Session) -> List[CabType]:
    rows = crud.query_listings(db, "cab", CabModel.available.is_(True))
    logger.info("Cab search -> %d available", len(rows))
    return [crud.model_to_pydantic(r) for r in rows]


def search_packages(db: Session, package_type: str = None) -> List[TravelPackage]:
    if package_type == "all":
        package_type = None
    rows = crud.query_packages(db, package_type)
    logger.info("Package search type=%r -> %d result(s)", package_type, len(rows))
    return [crud.model_to_pydantic(r) for r in rows]
