from datetime import time
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from booking_schemas import UserSession
from persistence.db import Base, init_db, make_engine
from persistence.models import (
    BusModel,
    CabModel,
    HotelModel,
    ProfileModel,
    ServiceProviderModel,
)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    yield session
    session.close()


@pytest.fixture
def traveller(db):
    db.add(ProfileModel(id="user_traveller", full_name="Asha Traveller", phone_number="+919800000002"))
    db.commit()
    return UserSession(user_id="user_traveller", email="asha@example.com")


@pytest.fixture
def operator(db):
    db.add(ProfileModel(id="user_operator", full_name="Ravi Operator", phone_number="+919800000001"))
    db.commit()
    return UserSession(user_id="user_operator", email="ravi@example.com")


@pytest.fixture
def provider(db, operator):
    row = ServiceProviderModel(id="prov_1", profile_id=operator.user_id, business_name="Ravi Travels")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def hotel(db, provider):
    row = HotelModel(
        id="hotel_1", provider_id=provider.id, name="Sea Breeze", location="North Goa",
        description="Beach side", price_per_night=Decimal("2500.00"), amenities=["wifi"], images=[],
        rating=4.0, rating_count=10,
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def bus(db, provider):
    row = BusModel(
        id="bus_1", provider_id=provider.id, operator="Night Rider", source="Mumbai", destination="Goa",
        departure_time=time(22, 0), arrival_time=time(6, 30), price=Decimal("500.00"),
        available_seats=40, rating=0.0, rating_count=0,
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def cab(db, provider):
    row = CabModel(
        id="cab_1", provider_id=provider.id, vehicle_type="Sedan", base_price=Decimal("100.00"),
        price_per_km=Decimal("12.50"), available=True, rating=0.0, rating_count=0,
    )
    db.add(row)
    db.commit()
    return row
