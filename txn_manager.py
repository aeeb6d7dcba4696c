import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

import config
from booking_schemas import PaymentCallback, SettlementOutcome, UserSession
from booking_tools import money
from errors import AuthRequired, BookingError, NotFound, SettlementBusy, ValidationFailed
from persistence import crud
from persistence.models import SettlementModel

logger = logging.getLogger(__name__)


class SettlementSequencer:
    """
    Settles one successful payment as a saga (record payment -> confirm booking -> schedule payout).

    Progress is stored in the `settlements` table, keyed by the gateway transaction id:
      - a replayed callback for a completed settlement returns the stored outcome, writing nothing
      - a settlement interrupted mid-way is run again; every step first looks for its own
        earlier effect (payment and payout rows carry the transaction id) and reuses it
      - if a step fails, finished steps are compensated in reverse order and the error re-raised
    The payment row always exists before the booking is marked paid.
    """

    def __init__(self, db: Session, fee_rate=None):
        self.db = db
        self.fee_rate = config.PLATFORM_FEE_RATE if fee_rate is None else fee_rate
        # (name, action, compensation)
        self.steps: List[Tuple[str, Callable, Optional[Callable]]] = [
            ("record_payment", self._record_payment, self._void_payment),
            ("confirm_booking", self._confirm_booking, self._release_booking),
            ("schedule_payout", self._schedule_payout, None),
        ]

    def settle(self, callback: PaymentCallback) -> SettlementOutcome:
        record = crud.get_settlement(self.db, callback.transaction_id)
        if record is not None and record.status == "completed":
            logger.info("Settlement %s already completed, ignoring replay", callback.transaction_id)
            return self._outcome(record, replayed=True)

        booking = crud.get_booking_by_id(self.db, callback.booking_id)
        if booking is None:
            raise NotFound(f"Booking {callback.booking_id} not found")
        if booking.payment_status == "paid" and booking.payment_id != callback.transaction_id:
            raise ValidationFailed(
                f"Booking {booking.id} is already paid by {booking.payment_id}"
            )

        if record is None:
            record, created = crud.start_settlement(
                self.db,
                transaction_id=callback.transaction_id,
                order_id=callback.order_id,
                booking_id=callback.booking_id,
                amount=money(callback.amount),
                currency=callback.currency,
                meta={"payment_method": callback.payment_method},
            )
            if not created:
                if record.status == "completed":
                    return self._outcome(record, replayed=True)
                raise SettlementBusy(
                    f"Settlement {callback.transaction_id} is being handled by another delivery"
                )
        elif record.status == "compensated":
            logger.info("Retrying compensated settlement %s", callback.transaction_id)
            record = crud.save_settlement(self.db, record, status="in_progress", steps_done=0,
                                          payment_id=None, provider_id=None, payout_id=None,
                                          payout_amount=None)
        else:
            logger.info("Resuming settlement %s (%d step(s) recorded)", callback.transaction_id,
                        record.steps_done)

        for index, (name, action, _) in enumerate(self.steps):
            try:
                changes = action(record, callback) or {}
            except Exception:
                logger.error("Settlement %s failed at step %s", callback.transaction_id, name, exc_info=True)
                self.compensate(record, upto=index)
                raise
            record = crud.save_settlement(self.db, record, steps_done=index + 1, **changes)
            logger.debug("Settlement %s: %s done", callback.transaction_id, name)

        record = crud.save_settlement(self.db, record, status="completed")
        logger.info("Settlement %s completed for booking %s", record.transaction_id, record.booking_id)
        return self._outcome(record)

    def compensate(self, record: SettlementModel, upto: int) -> None:
        """Undo steps [0, upto) in reverse order, then mark the record compensated."""
        for index in reversed(range(upto)):
            name, _, undo = self.steps[index]
            if undo is None:
                continue
            try:
                undo(record)
            except Exception:
                # steps [0, index] are still applied; stay in_progress so a replay redoes the rest
                logger.error("Compensation %s failed for %s", name, record.transaction_id, exc_info=True)
                try:
                    crud.save_settlement(self.db, record, steps_done=index + 1)
                except BookingError:
                    logger.error("Could not record partial rollback of %s", record.transaction_id)
                return
        crud.save_settlement(self.db, record, status="compensated", steps_done=0)
        logger.warning("Settlement %s rolled back", record.transaction_id)

    # --- steps ---

    def _record_payment(self, record: SettlementModel, callback: PaymentCallback) -> dict:
        payment = crud.payment_for_transaction(self.db, record.booking_id, record.transaction_id)
        if payment is not None:
            if payment.status != "completed":
                crud.mark_payment_completed(self.db, payment)
            return {"payment_id": payment.id}
        payment = crud.insert_payment(
            self.db,
            booking_id=record.booking_id,
            amount=record.amount,
            currency=record.currency,
            payment_method=callback.payment_method,
            gateway_payment_id=record.transaction_id,
            gateway_order_id=record.order_id,
        )
        return {"payment_id": payment.id}

    def _void_payment(self, record: SettlementModel) -> None:
        if record.payment_id:
            crud.mark_payment_failed(self.db, record.payment_id)

    def _confirm_booking(self, record: SettlementModel, callback: PaymentCallback) -> dict:
        booking = crud.get_booking_by_id(self.db, record.booking_id)
        if booking is None:
            raise NotFound(f"Booking {record.booking_id} not found")
        if booking.payment_status != "paid" or booking.payment_id != record.transaction_id:
            crud.mark_booking_paid(self.db, booking, record.transaction_id)
        return {}

    def _release_booking(self, record: SettlementModel) -> None:
        booking = crud.get_booking_by_id(self.db, record.booking_id)
        if booking is not None:
            crud.reset_booking_payment(self.db, booking)

    def _schedule_payout(self, record: SettlementModel, callback: PaymentCallback) -> dict:
        payout = crud.payout_for_transaction(self.db, record.transaction_id)
        if payout is not None:
            return {"provider_id": payout.provider_id, "payout_id": payout.id, "payout_amount": payout.amount}
        booking = crud.get_booking_by_id(self.db, record.booking_id)
        if booking is None:
            raise NotFound(f"Booking {record.booking_id} not found")
        provider_id = crud.listing_provider_id(self.db, booking.booking_type, booking.service_id)
        if provider_id is None:
            logger.warning("No provider for %s %s, skipping payout for booking %s",
                           booking.booking_type, booking.service_id, booking.id)
            return {}
        amount = money(record.amount * (1 - self.fee_rate))
        payout = crud.insert_payout(self.db, provider_id, amount, transaction_id=record.transaction_id)
        logger.info("Scheduled payout %s of %s to provider %s", payout.id, amount, provider_id)
        return {"provider_id": provider_id, "payout_id": payout.id, "payout_amount": amount}

    @staticmethod
    def _outcome(record: SettlementModel, replayed: bool = False) -> SettlementOutcome:
        return SettlementOutcome(
            booking_id=record.booking_id,
            transaction_id=record.transaction_id,
            payment_id=record.payment_id,
            provider_id=record.provider_id,
            payout_id=record.payout_id,
            payout_amount=record.payout_amount,
            replayed=replayed,
        )


def settle_provider_payouts(db: Session, session: Optional[UserSession], provider_id: str,
                            payout_id: Optional[str] = None) -> int:
    """
    Provider-initiated withdrawal: flips pending payouts to completed.
    Without `payout_id` every pending payout of the provider is settled at once.
    Returns how many payouts changed.
    """
    if session is None:
        raise AuthRequired("Please sign in to withdraw funds")
    provider = crud.get_provider(db, provider_id)
    if provider is None:
        raise NotFound(f"Provider {provider_id} not found")
    if provider.profile_id != session.user_id:
        raise AuthRequired(f"User {session.user_id} cannot settle payouts of provider {provider_id}")

    count = crud.complete_pending_payouts(db, provider_id, payout_id)
    if payout_id is not None and count == 0:
        raise NotFound(f"No pending payout {payout_id} for provider {provider_id}")
    logger.info("Settled %d payout(s) for provider %s", count, provider_id)
    return count
