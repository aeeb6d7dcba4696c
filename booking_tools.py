import math
import random
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Protocol, Tuple

import config
from errors import ValidationFailed

CENTS = Decimal("0.01")


def money(value) -> Decimal:
    """Coerce a price to a 2-place Decimal (floats go through str to avoid binary noise)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def checkout_total(subtotal, tax_rate: Decimal = None) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Returns (subtotal, tax, total) as shown on the checkout page.
    total = subtotal * (1 + tax_rate), rounded to paise/cents.
    """
    rate = config.TAX_RATE if tax_rate is None else tax_rate
    subtotal = money(subtotal)
    total = money(subtotal * (1 + rate))
    return subtotal, total - subtotal, total


def to_minor_units(amount) -> int:
    # gateways expect the smallest currency unit
    return int(money(amount) * 100)


def bus_schedule(travel_date: date, departure_time: time, arrival_time: time) -> Tuple[datetime, datetime]:
    """
    Put a route's fixed clock times on the travel date.
    An arrival clock time earlier than the departure means an overnight route,
    so the arrival rolls over to the next day.
    """
    departure = datetime.combine(travel_date, departure_time)
    arrival = datetime.combine(travel_date, arrival_time)
    if arrival < departure:
        arrival += timedelta(days=1)
    return departure, arrival


def count_nights(check_in: date, check_out: date) -> int:
    if check_out < check_in:
        raise ValidationFailed("Check-out date must be on or after check-in date")
    nights = math.ceil((check_out - check_in) / timedelta(days=1))
    return max(1, nights)


class DistanceEstimator(Protocol):
    """Anything that can estimate the road distance of a cab ride in km."""

    def estimate(self, pickup: str, dropoff: str) -> int:
        ...


class RandomDistanceEstimator:
    """
    Placeholder estimator: a uniform whole number of km in [min_km, max_km].
    Swap in a real maps/geocoding client without touching booking code.
    """

    def __init__(self, min_km: int = None, max_km: int = None, rng: Optional[random.Random] = None):
        self.min_km = config.DISTANCE_MIN_KM if min_km is None else min_km
        self.max_km = config.DISTANCE_MAX_KM if max_km is None else max_km
        self.rng = rng or random.Random()

    def estimate(self, pickup: str, dropoff: str) -> int:
        return self.rng.randint(self.min_km, self.max_km)


class FixedDistanceEstimator:
    """Always returns the same distance. Handy for demos and tests."""

    def __init__(self, km: int):
        self.km = km

    def estimate(self, pickup: str, dropoff: str) -> int:
        return self.km
