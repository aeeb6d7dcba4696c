from datetime import datetime, time
from decimal import Decimal

import pytest

from accounts import get_profile, provider_for, register_provider, save_profile, user_bookings
from booking_schemas import UserSession
from errors import AuthRequired, NotFound, ValidationFailed
from listings import (
    add_bus,
    add_cab,
    add_hotel,
    provider_payments,
    provider_payouts,
    provider_services,
    service_bookings,
    update_listing,
)
from persistence import crud
from persistence.models import BookingModel


def test_profile_round_trip(db):
    user = UserSession(user_id="user_new")
    with pytest.raises(NotFound):
        get_profile(db, user)
    save_profile(db, user, "  Meera  ", "+91 98000 00003")
    profile = save_profile(db, user, "Meera K", "")
    assert profile.full_name == "Meera K"
    assert profile.phone_number is None


def test_profile_needs_a_name(db):
    with pytest.raises(ValidationFailed):
        save_profile(db, UserSession(user_id="u"), " ")


def test_register_provider_is_one_per_user(db, operator):
    first = register_provider(db, operator, "Ravi Travels")
    second = register_provider(db, operator, "Other name")
    assert first.id == second.id
    assert provider_for(db, operator).business_name == "Ravi Travels"


def test_non_provider_cannot_add_listings(db, traveller):
    with pytest.raises(NotFound):
        add_cab(db, traveller, "Sedan", 100, 10)
    with pytest.raises(AuthRequired):
        add_cab(db, None, "Sedan", 100, 10)


def test_provider_adds_each_kind(db, operator, provider):
    hotel = add_hotel(db, operator, "Palm Stay", "Kochi", "3200", amenities=["pool"])
    bus = add_bus(db, operator, "Coastal", "Kochi", "Goa", time(18, 0), time(9, 0), 1200, 30)
    cab = add_cab(db, operator, "Hatchback", 80, "9.5")

    assert hotel.price_per_night == Decimal("3200.00")
    assert hotel.rating_count == 0
    assert bus.available_seats == 30
    assert cab.available is True
    assert cab.price_per_km == Decimal("9.50")
    assert {s.id for s in provider_services(db, operator)} == {hotel.id, bus.id, cab.id}


@pytest.mark.parametrize("price", [0, -10, "free", None])
def test_listing_price_must_be_positive(db, operator, provider, price):
    with pytest.raises(ValidationFailed):
        add_hotel(db, operator, "Palm Stay", "Kochi", price)


def test_listing_text_is_required(db, operator, provider):
    with pytest.raises(ValidationFailed):
        add_bus(db, operator, "", "Kochi", "Goa", time(18, 0), time(9, 0), 1200, 30)


def test_update_listing(db, operator, hotel):
    updated = update_listing(db, operator, "hotel", hotel.id, {"price_per_night": 2750, "location": "South Goa"})
    assert updated.price_per_night == Decimal("2750.00")
    assert updated.location == "South Goa"


def test_update_rejects_unknown_fields_and_other_owners(db, operator, traveller, hotel):
    with pytest.raises(ValidationFailed):
        update_listing(db, operator, "hotel", hotel.id, {"rating": 5})
    other = UserSession(user_id="user_other")
    save_profile(db, other, "Other", "1")
    register_provider(db, other, "Rival")
    with pytest.raises(AuthRequired):
        update_listing(db, other, "hotel", hotel.id, {"name": "Mine now"})


def test_provider_sees_bookings_payments_and_payouts(db, operator, traveller, provider, hotel, bus):
    for booking_id, service_id, kind in (("bk_h", hotel.id, "hotel"), ("bk_b", bus.id, "bus")):
        db.add(BookingModel(id=booking_id, user_id=traveller.user_id, booking_type=kind, service_id=service_id,
                            start_date=datetime(2025, 1, 1), total_amount=Decimal("100"),
                            status="pending", payment_status="pending"))
    db.commit()
    crud.insert_payment(db, booking_id="bk_h", amount=Decimal("118"), currency="INR",
                        payment_method="stripe", gateway_payment_id="pi_1")
    crud.insert_payout(db, provider.id, Decimal("106.20"))

    assert [b.id for b in service_bookings(db, operator, hotel.id)] == ["bk_h"]
    assert [p.gateway_payment_id for p in provider_payments(db, operator)] == ["pi_1"]
    assert [p.amount for p in provider_payouts(db, operator, "pending")] == [Decimal("106.20")]
    assert provider_payouts(db, operator, "completed") == []
    assert {b.id for b in user_bookings(db, traveller)} == {"bk_h", "bk_b"}
    with pytest.raises(NotFound):
        service_bookings(db, operator, "someone_elses")
