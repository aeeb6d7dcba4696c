from abc import ABC, abstractmethod
from datetime import date, datetime, time
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

import config
from booking_tools import bus_schedule, count_nights, money
from errors import ValidationFailed

BookingType = Literal["hotel", "bus", "cab"]
BookingStatus = Literal["pending", "confirmed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed"]


class UserSession(BaseModel):
    """The signed-in user, passed explicitly to every operation that needs identity."""

    user_id: str
    email: Optional[str] = None


# --- Trip parameters (what the user picked on the booking page) ---

class HotelStay(BaseModel):
    check_in: Optional[date] = None
    check_out: Optional[date] = None


class BusTrip(BaseModel):
    travel_date: Optional[date] = None


class CabRide(BaseModel):
    pickup: str = ""
    dropoff: str = ""
    pickup_date: Optional[date] = None
    pickup_time: Optional[time] = None
    distance_km: Optional[int] = None  # filled in by a DistanceEstimator if missing


TripParams = Union[HotelStay, BusTrip, CabRide]


class Quote(BaseModel):
    start: datetime
    end: Optional[datetime] = None
    total: Decimal
    details: Dict[str, str] = Field(default_factory=dict)


# --- Inventory (tagged union over hotel / bus / cab) ---

class Listing(BaseModel, ABC):
    """Fields shared by every bookable listing. Each kind prices itself in `quote`."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    provider_id: str
    rating: float = 0.0
    rating_count: int = 0

    @property
    def display_name(self) -> str:
        return self.id

    @abstractmethod
    def quote(self, trip) -> Quote:
        ...

    def price_quote(self, trip) -> Decimal:
        return self.quote(trip).total


class HotelListing(Listing):
    kind: Literal["hotel"] = "hotel"
    name: str
    location: str
    description: str = ""
    price_per_night: Decimal
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name

    def quote(self, trip: HotelStay) -> Quote:
        if not isinstance(trip, HotelStay):
            raise ValidationFailed("Hotel bookings need a HotelStay")
        if trip.check_in is None or trip.check_out is None:
            raise ValidationFailed("Please select check-in and check-out dates")
        nights = count_nights(trip.check_in, trip.check_out)
        return Quote(
            start=datetime.combine(trip.check_in, time.min),
            end=datetime.combine(trip.check_out, time.min),
            total=money(self.price_per_night * nights),
            details={
                "location": self.location,
                "nights": f"{nights} night{'s' if nights > 1 else ''}",
                "price_per_night": f"{money(self.price_per_night)}",
            },
        )


class BusRoute(Listing):
    kind: Literal["bus"] = "bus"
    operator: str
    source: str
    destination: str
    departure_time: time
    arrival_time: time
    price: Decimal
    available_seats: int = 0

    @property
    def display_name(self) -> str:
        return f"{self.operator}: {self.source} -> {self.destination}"

    def quote(self, trip: BusTrip) -> Quote:
        if not isinstance(trip, BusTrip):
            raise ValidationFailed("Bus bookings need a BusTrip")
        if trip.travel_date is None:
            raise ValidationFailed("Please select a travel date before booking")
        if self.available_seats <= 0:
            raise ValidationFailed("This bus is sold out")
        departure, arrival = bus_schedule(trip.travel_date, self.departure_time, self.arrival_time)
        return Quote(
            start=departure,
            end=arrival,
            total=money(self.price),
            details={
                "travel_date": trip.travel_date.isoformat(),
                "departure_time": self.departure_time.strftime("%H:%M"),
                "arrival_time": self.arrival_time.strftime("%H:%M"),
            },
        )


class CabType(Listing):
    kind: Literal["cab"] = "cab"
    vehicle_type: str
    base_price: Decimal
    price_per_km: Decimal
    available: bool = True

    @property
    def display_name(self) -> str:
        return self.vehicle_type

    def quote(self, trip: CabRide) -> Quote:
        if not isinstance(trip, CabRide):
            raise ValidationFailed("Cab bookings need a CabRide")
        if not (trip.pickup and trip.dropoff and trip.pickup_date and trip.pickup_time):
            raise ValidationFailed("Please fill in all fields")
        if not self.available:
            raise ValidationFailed("This cab is not available")
        if trip.distance_km is None:
            raise ValidationFailed("Please search for cabs first")
        if not config.DISTANCE_MIN_KM <= trip.distance_km <= config.DISTANCE_MAX_KM:
            raise ValidationFailed(f"Distance {trip.distance_km} km is out of the serviceable range")
        return Quote(
            start=datetime.combine(trip.pickup_date, trip.pickup_time),
            total=money(self.base_price + self.price_per_km * trip.distance_km),
            details={
                "pickup_location": trip.pickup,
                "drop_off_location": trip.dropoff,
                "distance": f"{trip.distance_km} km",
                "base_price": f"{money(self.base_price)}",
                "price_per_km": f"{money(self.price_per_km)}",
            },
        )


InventoryItem = Annotated[Union[HotelListing, BusRoute, CabType], Field(discriminator="kind")]


class TravelPackage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: Literal["regular", "premium", "luxury"]
    description: str = ""
    price: Decimal
    duration_days: int
    inclusions: List[str] = Field(default_factory=list)


# --- Records owned by the store ---

class Booking(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    booking_type: str
    service_id: str
    start_date: datetime
    end_date: Optional[datetime] = None
    total_amount: Decimal
    status: BookingStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None


class Payment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    amount: Decimal
    currency: str
    status: Literal["completed", "failed"]
    payment_method: str
    gateway_payment_id: str
    gateway_order_id: Optional[str] = None


class Payout(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    provider_id: str
    amount: Decimal
    status: Literal["pending", "completed"]


class Profile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str = ""
    phone_number: Optional[str] = None


class Provider(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    profile_id: str
    business_name: str = ""


class BookingIntent(BaseModel):
    booking_id: str
    booking_type: BookingType
    service_name: str
    quote: Quote


class CheckoutConfig(BaseModel):
    """Everything the hosted checkout needs. ``notes`` travels back to us on the callback."""

    booking_id: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    amount_minor: int
    currency: str
    payer_name: str
    payer_email: str
    payer_phone: str
    description: str
    notes: Dict[str, str] = Field(default_factory=dict)


class PaymentCallback(BaseModel):
    transaction_id: str
    order_id: Optional[str] = None
    booking_id: str
    amount: Decimal
    currency: str = config.CURRENCY
    payment_method: str = "stripe"


class SettlementOutcome(BaseModel):
    booking_id: str
    transaction_id: str
    payment_id: Optional[str] = None
    provider_id: Optional[str] = None
    payout_id: Optional[str] = None
    payout_amount: Optional[Decimal] = None
    replayed: bool = False
