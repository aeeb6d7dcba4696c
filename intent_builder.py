import logging
from typing import Optional

from sqlalchemy.orm import Session

from booking_schemas import BookingIntent, CabRide, CabType, UserSession
from booking_tools import DistanceEstimator, RandomDistanceEstimator
from errors import AuthRequired
from persistence import crud

logger = logging.getLogger(__name__)


class BookingIntentBuilder:
    """
    Turns a picked listing + trip parameters into a pending booking row.

    The listing prices itself (HotelListing / BusRoute / CabType .quote());
    this class only fills in what the listing cannot know (cab distance),
    checks identity, and persists the result.
    """

    def __init__(self, db: Session, estimator: Optional[DistanceEstimator] = None):
        self.db = db
        self.estimator = estimator or RandomDistanceEstimator()

    def estimate_distance(self, ride: CabRide) -> CabRide:
        if ride.distance_km is not None:
            return ride
        km = self.estimator.estimate(ride.pickup, ride.dropoff)
        logger.debug("Estimated %s -> %s at %d km", ride.pickup, ride.dropoff, km)
        return ride.model_copy(update={"distance_km": km})

    def quote(self, item, trip):
        if isinstance(item, CabType) and isinstance(trip, CabRide):
            trip = self.estimate_distance(trip)
        return item.quote(trip)

    def create(self, session: Optional[UserSession], item, trip) -> BookingIntent:
        """
        Price the trip and insert one booking with status=pending, payment_status=pending.
        Raises AuthRequired before any write when nobody is signed in.
        """
        if session is None:
            raise AuthRequired(f"Please sign in to book a {item.kind}")

        quote = self.quote(item, trip)
        row = crud.insert_booking(
            self.db,
            user_id=session.user_id,
            booking_type=item.kind,
            service_id=item.id,
            start_date=quote.start,
            end_date=quote.end,
            total_amount=quote.total,
        )
        logger.info("Created pending %s booking %s for user %s (total=%s)",
                    item.kind, row.id, session.user_id, quote.total)
        return BookingIntent(
            booking_id=row.id,
            booking_type=item.kind,
            service_name=item.display_name,
            quote=quote,
        )
