import logging
from typing import Optional

import stripe
from sqlalchemy.orm import Session

import config
from booking_schemas import CheckoutConfig, PaymentCallback, SettlementOutcome, UserSession
from booking_tools import checkout_total, money, to_minor_units
from errors import AuthRequired, ExternalGatewayFailed, NotFound, ValidationFailed
from persistence import crud
from txn_manager import SettlementSequencer

logger = logging.getLogger(__name__)

stripe.api_key = config.STRIPE_API_KEY


def build_checkout(db: Session, session: Optional[UserSession], booking_id: str,
                   description: str = None) -> CheckoutConfig:
    """
    Everything the hosted checkout needs for one pending booking:
    subtotal + tax, amount in minor units, payer contact, and the booking id
    in `notes` so the success callback can find the booking again.
    """
    if session is None:
        raise AuthRequired("Please sign in to make a payment")
    profile = crud.get_profile(db, session.user_id)
    if profile is None:
        raise NotFound(f"No profile for user {session.user_id}")
    if not profile.phone_number:
        raise ValidationFailed("Please update your phone number in your profile before making a payment")

    booking = crud.get_booking_by_id(db, booking_id)
    if booking is None or booking.user_id != session.user_id:
        raise NotFound(f"Booking {booking_id} not found")
    if booking.payment_status == "paid":
        raise ValidationFailed(f"Booking {booking_id} is already paid")

    subtotal, tax, total = checkout_total(booking.total_amount)
    return CheckoutConfig(
        booking_id=booking.id,
        subtotal=subtotal,
        tax=tax,
        total=total,
        amount_minor=to_minor_units(total),
        currency=config.CURRENCY,
        payer_name=profile.full_name or "",
        payer_email=session.email or "",
        payer_phone=profile.phone_number,
        description=description or f"Payment for {booking.booking_type} booking {booking.id}",
        notes={"booking_id": booking.id},
    )


def create_checkout_session(checkout: CheckoutConfig):
    """
    Create Stripe Checkout Session for a prepared checkout.
    Returns the session object (client can redirect to session.url).
    """
    try:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": checkout.currency.lower(),
                    "product_data": {"name": f"{config.BRAND_NAME}: {checkout.description}"[:100]},
                    # Stripe expects unit_amount in the smallest currency unit
                    "unit_amount": checkout.amount_minor,
                },
                "quantity": 1,
            }],
            mode="payment",
            customer_email=checkout.payer_email or None,
            success_url=config.SUCCESS_URL + "?session_id={CHECKOUT_SESSION_ID}",
            cancel_url=config.CANCEL_URL,
            # embed booking id so the webhook can look it up
            metadata=checkout.notes,
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout creation failed for booking %s", checkout.booking_id, exc_info=True)
        raise ExternalGatewayFailed("Could not start checkout", cause=e) from e
    logger.info("Checkout session %s opened for booking %s (%d %s)",
                session.id, checkout.booking_id, checkout.amount_minor, checkout.currency)
    return session


def callback_from_session(stripe_session: dict) -> PaymentCallback:
    booking_id = (stripe_session.get("metadata") or {}).get("booking_id")
    if not booking_id:
        raise ValidationFailed("No booking id in session metadata")
    amount_total = stripe_session.get("amount_total")
    if amount_total is None:
        raise ValidationFailed("No amount in checkout session")
    return PaymentCallback(
        transaction_id=stripe_session.get("payment_intent") or stripe_session["id"],
        order_id=stripe_session.get("id"),
        booking_id=booking_id,
        amount=money(amount_total) / 100,
        currency=(stripe_session.get("currency") or config.CURRENCY).upper(),
        payment_method="stripe",
    )


def handle_stripe_checkout_completed(db: Session, stripe_session: dict) -> SettlementOutcome:
    """
    Called after stripe webhook validates a 'checkout.session.completed' event.
    Settles the booking carried in the session metadata.
    """
    callback = callback_from_session(stripe_session)
    return SettlementSequencer(db).settle(callback)
