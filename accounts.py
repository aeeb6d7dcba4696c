import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from booking_schemas import Booking, Profile, Provider, UserSession
from errors import AuthRequired, NotFound, ValidationFailed
from persistence import crud

logger = logging.getLogger(__name__)


def require_session(session: Optional[UserSession], action: str = "continue") -> UserSession:
    if session is None:
        raise AuthRequired(f"Please sign in to {action}")
    return session


def get_profile(db: Session, session: Optional[UserSession]) -> Profile:
    session = require_session(session, "view your profile")
    row = crud.get_profile(db, session.user_id)
    if row is None:
        raise NotFound(f"No profile for user {session.user_id}")
    return crud.model_to_pydantic(row)


def save_profile(db: Session, session: Optional[UserSession], full_name: str, phone_number: str = None) -> Profile:
    session = require_session(session, "update your profile")
    if not full_name or not full_name.strip():
        raise ValidationFailed("Full name is required")
    row = crud.save_profile(db, session.user_id, full_name.strip(), (phone_number or "").strip() or None)
    logger.info("Saved profile for user %s", session.user_id)
    return crud.model_to_pydantic(row)


def user_bookings(db: Session, session: Optional[UserSession]) -> List[Booking]:
    """Newest first."""
    session = require_session(session, "view your bookings")
    return [crud.model_to_pydantic(r) for r in crud.bookings_for_user(db, session.user_id)]


def register_provider(db: Session, session: Optional[UserSession], business_name: str = "") -> Provider:
    session = require_session(session, "become a service provider")
    if crud.get_profile(db, session.user_id) is None:
        raise NotFound(f"No profile for user {session.user_id}")
    existing = crud.get_provider_by_profile(db, session.user_id)
    if existing is not None:
        return crud.model_to_pydantic(existing)
    row = crud.create_provider(db, session.user_id, business_name)
    logger.info("User %s registered as provider %s", session.user_id, row.id)
    return crud.model_to_pydantic(row)


def provider_for(db: Session, session: Optional[UserSession]) -> Provider:
    session = require_session(session, "manage services")
    row = crud.get_provider_by_profile(db, session.user_id)
    if row is None:
        raise NotFound(f"User {session.user_id} is not a service provider")
    return crud.model_to_pydantic(row)
