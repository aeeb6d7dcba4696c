import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import stripe
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import config
from booking_schemas import UserSession
from errors import (
    AuthRequired,
    BookingError,
    ExternalGatewayFailed,
    NotFound,
    RemoteReadFailed,
    RemoteWriteFailed,
    SettlementBusy,
    ValidationFailed,
)
from payments.checkout import handle_stripe_checkout_completed
from persistence.db import get_db, init_db
from txn_manager import settle_provider_payouts

logger = logging.getLogger(__name__)

stripe.api_key = config.STRIPE_API_KEY
STRIPE_WEBHOOK_SECRET = config.STRIPE_WEBHOOK_SECRET

STATUS_CODES = {
    AuthRequired: 401,
    NotFound: 404,
    ValidationFailed: 422,
    SettlementBusy: 409,
    ExternalGatewayFailed: 502,
    RemoteReadFailed: 503,
    RemoteWriteFailed: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.configure_logging()
    # initialize DB (creates tables)
    init_db()
    yield


app = FastAPI(lifespan=lifespan)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    status = STATUS_CODES.get(type(exc), 500)
    logger.warning("%s %s -> %d: %s", request.method, request.url.path, status, exc)
    return JSONResponse(status_code=status, content={"error": type(exc).__name__, "detail": exc.user_message})


def current_session(x_user_id: Optional[str] = Header(None), x_user_email: Optional[str] = Header(None)):
    if not x_user_id:
        return None
    return UserSession(user_id=x_user_id, email=x_user_email)


@app.post("/webhook/stripe")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None), db: Session = Depends(get_db)):
    payload = await request.body()
    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    if STRIPE_WEBHOOK_SECRET:
        if not stripe_signature:
            raise HTTPException(status_code=400, detail="Missing Stripe signature")
        try:
            stripe.WebhookSignature.verify_header(body, stripe_signature, STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError:
            raise HTTPException(status_code=400, detail="Invalid Stripe signature")
    else:
        # Without a secret nothing is verified (only for local dev; NOT for prod)
        logger.warning("STRIPE_WEBHOOK_SECRET not set, accepting unsigned webhook")

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    # Handle the event types we care about
    if event.get("type") == "checkout.session.completed":
        data = event.get("data")
        session = data.get("object") if isinstance(data, dict) else None
        if not isinstance(session, dict):
            raise HTTPException(status_code=400, detail="Event has no checkout session")
        outcome = handle_stripe_checkout_completed(db, session)
        return JSONResponse(content={"received": True, "result": outcome.model_dump(mode="json")})

    # Other events are acknowledged so Stripe stops retrying them
    return JSONResponse(content={"received": True})


@app.post("/providers/{provider_id}/payouts/settle")
async def settle_payouts(provider_id: str, payout_id: Optional[str] = None,
                         session: Optional[UserSession] = Depends(current_session),
                         db: Session = Depends(get_db)):
    count = settle_provider_payouts(db, session, provider_id, payout_id)
    return JSONResponse(content={"ok": True, "settled": count})
