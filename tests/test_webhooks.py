import json
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from persistence import crud
from persistence.db import get_db
from persistence.models import BookingModel, PaymentModel, PayoutModel, SettlementModel
from webhooks import webhooks


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setattr(webhooks, "STRIPE_WEBHOOK_SECRET", None)

    def override_db():
        yield db

    webhooks.app.dependency_overrides[get_db] = override_db
    yield TestClient(webhooks.app)
    webhooks.app.dependency_overrides.clear()


@pytest.fixture
def booking(db, traveller, cab):
    row = BookingModel(
        id="bk_cab", user_id=traveller.user_id, booking_type="cab", service_id=cab.id,
        start_date=datetime(2025, 6, 1, 9, 30), total_amount=Decimal("350.00"),
        status="pending", payment_status="pending",
    )
    db.add(row)
    db.commit()
    return row


def _completed_event():
    return {
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_1",
            "payment_intent": "pi_1",
            "amount_total": 41300,
            "currency": "inr",
            "metadata": {"booking_id": "bk_cab"},
        }},
    }


def test_checkout_completed_settles_once(client, db, booking, provider):
    first = client.post("/webhook/stripe", content=json.dumps(_completed_event()))
    second = client.post("/webhook/stripe", content=json.dumps(_completed_event()))

    assert first.status_code == 200
    assert first.json()["result"]["payout_amount"] == "371.70"
    assert second.json()["result"]["replayed"] is True
    assert db.query(PaymentModel).count() == 1
    assert db.query(PayoutModel).count() == 1


def test_other_events_are_acknowledged(client):
    response = client.post("/webhook/stripe", content=json.dumps({"type": "charge.refunded", "data": {}}))
    assert response.json() == {"received": True}


def test_unknown_booking_maps_to_404(client, db):
    event = _completed_event()
    event["data"]["object"]["metadata"]["booking_id"] = "missing"
    response = client.post("/webhook/stripe", content=json.dumps(event))
    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


def test_signature_is_checked_when_secret_is_set(client, monkeypatch):
    monkeypatch.setattr(webhooks, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    payload = json.dumps(_completed_event())
    assert client.post("/webhook/stripe", content=payload).status_code == 400
    bad = client.post("/webhook/stripe", content=payload, headers={"Stripe-Signature": "t=1,v1=deadbeef"})
    assert bad.status_code == 400


def test_provider_withdraws_pending_payouts(client, db, operator, provider):
    db.add_all([PayoutModel(provider_id=provider.id, amount=Decimal("90"), status="pending"),
                PayoutModel(provider_id=provider.id, amount=Decimal("45"), status="pending")])
    db.commit()

    assert client.post(f"/providers/{provider.id}/payouts/settle").status_code == 401
    response = client.post(f"/providers/{provider.id}/payouts/settle", headers={"X-User-Id": operator.user_id})
    assert response.json() == {"ok": True, "settled": 2}


def test_non_utf8_body_is_rejected(client):
    response = client.post("/webhook/stripe", content=b"\xff\xfe\x00not-json")
    assert response.status_code == 400


@pytest.mark.parametrize("event", [
    {"type": "checkout.session.completed"},
    {"type": "checkout.session.completed", "data": {}},
    {"type": "checkout.session.completed", "data": {"object": "cs_1"}},
    ["checkout.session.completed"],
])
def test_malformed_completed_event_is_rejected(client, db, event):
    response = client.post("/webhook/stripe", content=json.dumps(event))
    assert response.status_code == 400
    assert db.query(PaymentModel).count() == 0


def test_settlement_running_elsewhere_maps_to_409(client, db, booking, provider):
    db.add(SettlementModel(transaction_id="pi_1", order_id="cs_1", booking_id="bk_cab",
                           amount=Decimal("413.00"), currency="INR", status="in_progress", steps_done=0))
    db.commit()
    real_lookup = crud.get_settlement
    calls = []

    def lookup_misses_first(db_, transaction_id):
        calls.append(transaction_id)
        return None if len(calls) == 1 else real_lookup(db_, transaction_id)

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(crud, "get_settlement", lookup_misses_first)
        response = client.post("/webhook/stripe", content=json.dumps(_completed_event()))

    assert response.status_code == 409
    assert response.json()["error"] == "SettlementBusy"
    assert db.query(PaymentModel).count() == 0
