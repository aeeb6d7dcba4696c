"""
Run this script to see a full booking flow against a throwaway in-memory database:
 - seed a provider with a bus route
 - search the catalog and book a seat (pending booking)
 - build the checkout (18% tax on top)
 - simulate the gateway's success callback and settle it
 - replay the same callback (nothing new is written)
 - let the provider withdraw the pending payout
"""

from datetime import date, time

from sqlalchemy.orm import sessionmaker

import config
from accounts import register_provider, save_profile
from booking_schemas import BusTrip, PaymentCallback, UserSession
from catalog import search_buses
from intent_builder import BookingIntentBuilder
from listings import add_bus, provider_payouts
from payments.checkout import build_checkout
from persistence.db import init_db, make_engine
from txn_manager import SettlementSequencer, settle_provider_payouts


def main(database_url: str = "sqlite://"):
    engine = make_engine(database_url)
    init_db(bind=engine)
    db = sessionmaker(bind=engine, autoflush=False, autocommit=False)()

    operator = UserSession(user_id="user_operator", email="ops@example.com")
    traveller = UserSession(user_id="user_123", email="traveller@example.com")

    save_profile(db, operator, "Night Rider Travels", "+919800000001")
    provider = register_provider(db, operator, "Night Rider Travels")
    add_bus(db, operator, "Night Rider", "Mumbai", "Goa", time(22, 0), time(6, 30), 500, 40)
    save_profile(db, traveller, "Asha Traveller", "+919800000002")

    print("=== Search ===")
    routes = search_buses(db, source="mumbai", destination="goa")
    for route in routes:
        print(f"- {route.display_name}: {route.price} ({route.available_seats} seats)")

    print("\n=== Book ===")
    intent = BookingIntentBuilder(db).create(traveller, routes[0], BusTrip(travel_date=date(2025, 3, 14)))
    print(f"Booking {intent.booking_id}: {intent.quote.start} -> {intent.quote.end}, {intent.quote.total}")

    print("\n=== Checkout ===")
    checkout = build_checkout(db, traveller, intent.booking_id)
    print(f"Subtotal {checkout.subtotal} + tax {checkout.tax} = {checkout.total} "
          f"({checkout.amount_minor} minor units, {checkout.currency})")

    # Simulate the gateway calling back (in real app: hosted checkout and webhooks)
    callback = PaymentCallback(
        transaction_id="pi_demo_001",
        order_id="cs_demo_001",
        booking_id=intent.booking_id,
        amount=checkout.total,
        currency=config.CURRENCY,
    )

    print("\n=== Settle ===")
    sequencer = SettlementSequencer(db)
    outcome = sequencer.settle(callback)
    print(f"payment={outcome.payment_id} payout={outcome.payout_id} amount={outcome.payout_amount}")
    replay = sequencer.settle(callback)
    print(f"replayed={replay.replayed} payout={replay.payout_id}")

    print("\n=== Withdraw ===")
    settled = settle_provider_payouts(db, operator, provider.id)
    print(f"settled {settled} payout(s)")
    for payout in provider_payouts(db, operator):
        print(f"- {payout.id}: {payout.amount} {payout.status}")

    db.close()
    return outcome


if __name__ == "__main__":
    config.configure_logging()
    main()
