from decimal import Decimal

import pytest

from catalog import search_buses, search_cabs, search_hotels, search_packages
from errors import RemoteReadFailed
from persistence.db import Base
from persistence.models import BusModel, CabModel, HotelModel, PackageModel


@pytest.fixture
def more_listings(db, provider, hotel, bus, cab):
    db.add_all([
        HotelModel(id="hotel_2", provider_id=provider.id, name="Hill View", location="Manali",
                   price_per_night=Decimal("1800"), rating=0.0, rating_count=0),
        BusModel(id="bus_2", provider_id=provider.id, operator="Day Line", source="Pune", destination="Goa",
                 departure_time=bus.departure_time, arrival_time=bus.arrival_time,
                 price=Decimal("650"), available_seats=10, rating=0.0, rating_count=0),
        CabModel(id="cab_2", provider_id=provider.id, vehicle_type="SUV", base_price=Decimal("200"),
                 price_per_km=Decimal("18"), available=False, rating=0.0, rating_count=0),
        PackageModel(id="pkg_1", name="Goa Getaway", type="regular", price=Decimal("15000"),
                     duration_days=4, inclusions=["hotel", "breakfast"]),
        PackageModel(id="pkg_2", name="Kerala Backwaters", type="luxury", price=Decimal("52000"),
                     duration_days=6, inclusions=["houseboat"]),
    ])
    db.commit()


def test_hotel_location_is_case_insensitive_substring(db, more_listings):
    results = search_hotels(db, location="goa")
    assert [h.id for h in results] == ["hotel_1"]
    assert results[0].kind == "hotel"


def test_no_filters_returns_everything(db, more_listings):
    assert {h.id for h in search_hotels(db)} == {"hotel_1", "hotel_2"}
    assert {b.id for b in search_buses(db, source="  ")} == {"bus_1", "bus_2"}


def test_hotel_dates_do_not_narrow_results(db, more_listings):
    from datetime import date

    results = search_hotels(db, location="", check_in=date(2025, 1, 1), check_out=date(2025, 1, 2))
    assert len(results) == 2


def test_bus_source_and_destination(db, more_listings):
    assert [b.id for b in search_buses(db, source="MUM", destination="go")] == ["bus_1"]
    assert {b.id for b in search_buses(db, destination="Goa")} == {"bus_1", "bus_2"}
    assert search_buses(db, source="Delhi") == []


def test_only_available_cabs_are_listed(db, more_listings):
    assert [c.id for c in search_cabs(db)] == ["cab_1"]


def test_packages_by_type(db, more_listings):
    assert [p.id for p in search_packages(db, "luxury")] == ["pkg_2"]
    assert {p.id for p in search_packages(db, "all")} == {"pkg_1", "pkg_2"}


def test_store_failure_is_not_an_empty_result(db, engine, hotel):
    Base.metadata.drop_all(bind=engine)
    with pytest.raises(RemoteReadFailed):
        search_hotels(db, location="goa")
