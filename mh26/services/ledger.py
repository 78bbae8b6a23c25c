"""Payment / payout ledger.

Money movement is recorded as rows in ``transactions``. The provider's
earnings counters are only ever adjusted next to the ledger write that
justifies them, inside the same unit of work, so that

    provider.total_earnings   == sum(COMPLETED PAYOUT amounts)
    provider.pending_earnings == sum(PENDING PAYOUT amounts)

``reconcile_provider_earnings`` rebuilds the counters from the ledger when
they need auditing.

A payout is only settled once the customer has paid at least the final
price. A refund taken before the job is done closes the booking.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mh26.core.exceptions import AmountMismatch, ConcurrencyConflict, InvalidTransition, NotFound, ValidationFailed
from mh26.db.base import unit_of_work
from mh26.db.models.booking import Booking
from mh26.db.models.enums import BookingStatus, PaymentStatus, TransactionStatus, TransactionType
from mh26.db.models.provider import Provider
from mh26.db.models.transaction import Transaction
from mh26.services.base import event_for, lock_booking, record_event, to_money, utcnow
from mh26.services.notifications import EventKind, NotificationDispatcher, dispatcher as default_dispatcher
from mh26.services.state_machine import BookingAction, next_status

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def adjust_provider_earnings(db: Session, provider_id: int, total=ZERO, this_month=ZERO, pending=ZERO):
    """Apply counter deltas as a single SQL UPDATE so concurrent requests cannot lose increments."""
    db.query(Provider).filter(Provider.id == provider_id).update(
        {
            Provider.total_earnings: Provider.total_earnings + total,
            Provider.this_month_earnings: Provider.this_month_earnings + this_month,
            Provider.pending_earnings: Provider.pending_earnings + pending,
        },
        synchronize_session=False,
    )
    provider = db.get(Provider, provider_id)
    if provider is not None:
        db.expire(provider, ["total_earnings", "this_month_earnings", "pending_earnings"])


def add_transaction(db: Session, tx: Transaction) -> Transaction:
    """Insert a ledger row now, so a racing insert of the same external id surfaces here."""
    db.add(tx)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflict(f"Transaction {tx.external_id} was recorded by another request, retry") from exc
    return tx


def pending_payout(db: Session, booking_id: int) -> Optional[Transaction]:
    return db.query(Transaction).filter(
        Transaction.booking_id == booking_id,
        Transaction.type == TransactionType.PAYOUT,
        Transaction.status == TransactionStatus.PENDING,
    ).first()


def open_payout(db: Session, booking: Booking, now: Optional[datetime] = None) -> Transaction:
    """Create the PENDING payout for a just-completed booking and accrue it as pending earnings."""
    payout = Transaction(
        booking_id=booking.id,
        provider_id=booking.provider_id,
        type=TransactionType.PAYOUT,
        status=TransactionStatus.PENDING,
        amount=booking.provider_earnings,
        external_id=f"payout-{booking.id}",
        created_at=now or utcnow(),
    )
    add_transaction(db, payout)
    adjust_provider_earnings(db, booking.provider_id, pending=booking.provider_earnings)
    logger.info("Payout of %s opened for booking %s", booking.provider_earnings, booking.id)
    return payout


def void_payout(db: Session, booking: Booking, note: str) -> Optional[Transaction]:
    payout = pending_payout(db, booking.id)
    if payout is None:
        return None
    payout.status = TransactionStatus.FAILED
    payout.note = note
    adjust_provider_earnings(db, booking.provider_id, pending=-payout.amount)
    logger.info("Payout %s for booking %s voided: %s", payout.id, booking.id, note)
    return payout


def paid_amount(db: Session, booking_id: int) -> Decimal:
    total = db.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
        Transaction.booking_id == booking_id,
        Transaction.type == TransactionType.PAYMENT,
        Transaction.status == TransactionStatus.COMPLETED,
    ).scalar()
    return to_money(total or 0)


def price_due(booking: Booking) -> Decimal:
    price = booking.actual_price if booking.actual_price is not None else booking.estimated_price
    return to_money(price)


def amount_due(db: Session, booking: Booking) -> Decimal:
    """What the customer still owes: the final (or estimated) price less completed payments."""
    return price_due(booking) - paid_amount(db, booking.id)


def refund_in_place(
    db: Session, booking: Booking, amount, external_id: Optional[str] = None, now: Optional[datetime] = None
) -> Transaction:
    """Refund a PAID booking inside the caller's unit of work."""
    if booking.payment_status != PaymentStatus.PAID:
        raise InvalidTransition("Only paid bookings can be refunded")
    settled = db.query(Transaction).filter(
        Transaction.booking_id == booking.id,
        Transaction.type == TransactionType.PAYOUT,
        Transaction.status == TransactionStatus.COMPLETED,
    ).first()
    if settled is not None:
        raise InvalidTransition("Payout for this booking is already settled")

    amount = to_money(amount)
    paid = paid_amount(db, booking.id)
    if amount <= 0 or amount > paid:
        raise AmountMismatch(f"Refund amount {amount} must be between 0.01 and the paid amount {paid}")

    now = now or utcnow()
    refund = add_transaction(db, Transaction(
        booking_id=booking.id,
        provider_id=booking.provider_id,
        type=TransactionType.REFUND,
        status=TransactionStatus.COMPLETED,
        amount=amount,
        external_id=external_id or f"refund-{uuid4().hex}",
        created_at=now,
        completed_at=now,
    ))
    booking.payment_status = PaymentStatus.REFUNDED
    void_payout(db, booking, note="voided by refund")
    return refund


class LedgerService:
    """record_payment / settle_payout / refund, one unit of work each."""

    def __init__(self, db: Session, dispatcher: Optional[NotificationDispatcher] = None):
        self.db = db
        self.dispatcher = dispatcher or default_dispatcher

    def _existing(self, external_id: Optional[str], booking_id: int, tx_type: TransactionType) -> Optional[Transaction]:
        """Look up a replayed gateway reference. Call with the booking locked."""
        if not external_id:
            return None
        tx = self.db.query(Transaction).filter(Transaction.external_id == external_id).first()
        if tx is None:
            return None
        if tx.booking_id != booking_id:
            raise ValidationFailed("Transaction id already used for another booking")
        if tx.type != tx_type:
            raise ValidationFailed(f"Transaction id already used for a {tx.type.value.lower()}")
        return tx

    def record_payment(
        self,
        booking_id: int,
        amount,
        method: str,
        external_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        now = now or utcnow()
        with unit_of_work(self.db):
            booking = lock_booking(self.db, booking_id)
            existing = self._existing(external_id, booking.id, TransactionType.PAYMENT)
            if existing is not None:
                if existing.status != TransactionStatus.COMPLETED:
                    raise ValidationFailed("Transaction id belongs to a failed payment attempt")
                logger.info("Payment %s already recorded for booking %s", external_id, booking_id)
                return existing

            if booking.status == BookingStatus.CANCELLED:
                raise InvalidTransition("Cannot pay for a cancelled booking")
            if booking.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
                raise InvalidTransition(f"Booking payment is already {booking.payment_status.value}")

            due = amount_due(self.db, booking)
            amount = to_money(amount)
            if amount != due:
                raise AmountMismatch(f"Payment of {amount} does not match the amount due {due}")

            tx = add_transaction(self.db, Transaction(
                booking_id=booking.id,
                provider_id=booking.provider_id,
                type=TransactionType.PAYMENT,
                status=TransactionStatus.COMPLETED,
                amount=amount,
                method=method,
                external_id=external_id or f"pay-{uuid4().hex}",
                created_at=now,
                completed_at=now,
            ))
            booking.payment_status = PaymentStatus.PAID
            rows = self.dispatcher.stage(self.db, event_for(booking, EventKind.PAYMENT_RECEIVED, amount=amount))

        logger.info("Payment of %s recorded for booking %s via %s", amount, booking_id, method)
        self.dispatcher.deliver(rows)
        return tx

    def record_payment_failure(
        self, booking_id: int, method: str, external_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> Transaction:
        now = now or utcnow()
        with unit_of_work(self.db):
            booking = lock_booking(self.db, booking_id)
            existing = self._existing(external_id, booking.id, TransactionType.PAYMENT)
            if existing is not None:
                if existing.status != TransactionStatus.FAILED:
                    raise ValidationFailed("Transaction id belongs to a completed payment")
                return existing

            if booking.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
                raise InvalidTransition(f"Booking payment is already {booking.payment_status.value}")
            tx = add_transaction(self.db, Transaction(
                booking_id=booking.id,
                provider_id=booking.provider_id,
                type=TransactionType.PAYMENT,
                status=TransactionStatus.FAILED,
                amount=amount_due(self.db, booking),
                method=method,
                external_id=external_id or f"pay-{uuid4().hex}",
                created_at=now,
            ))
            booking.payment_status = PaymentStatus.FAILED

        logger.warning("Payment failed for booking %s via %s", booking_id, method)
        return tx

    def settle_payout(self, booking_id: int, now: Optional[datetime] = None) -> Transaction:
        now = now or utcnow()
        with unit_of_work(self.db):
            booking = lock_booking(self.db, booking_id)
            if booking.status != BookingStatus.COMPLETED:
                raise InvalidTransition("Only completed bookings can be settled")
            if booking.payment_status != PaymentStatus.PAID:
                raise InvalidTransition("Customer payment has not cleared for this booking")
            paid = paid_amount(self.db, booking.id)
            if paid < to_money(booking.actual_price):
                raise InvalidTransition(
                    f"Customer paid {paid} of the final price {to_money(booking.actual_price)}"
                )

            payout = pending_payout(self.db, booking.id)
            if payout is None:
                raise InvalidTransition("No pending payout for this booking")

            payout.status = TransactionStatus.COMPLETED
            payout.completed_at = now
            adjust_provider_earnings(
                self.db,
                booking.provider_id,
                total=payout.amount,
                this_month=payout.amount,
                pending=-payout.amount,
            )
            # bump the booking version so a parallel settle of the same booking conflicts
            booking.updated_at = now
            rows = self.dispatcher.stage(self.db, event_for(booking, EventKind.PAYOUT_SETTLED, amount=payout.amount))

        logger.info("Payout for booking %s settled", booking_id)
        self.dispatcher.deliver(rows)
        return payout

    def refund(
        self,
        booking_id: int,
        amount,
        external_id: Optional[str] = None,
        now: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> Transaction:
        """Refund a paid booking.

        A COMPLETED or CANCELLED booking keeps its status. A PENDING or
        CONFIRMED booking must be refunded in full and is cancelled with it;
        IN_PROGRESS and DISPUTED bookings go through a dispute instead.
        """
        now = now or utcnow()
        with unit_of_work(self.db):
            booking = lock_booking(self.db, booking_id)
            existing = self._existing(external_id, booking.id, TransactionType.REFUND)
            if existing is not None:
                return existing

            current = booking.status
            target = None
            if current not in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
                target = next_status(current, BookingAction.CANCEL)

            paid = paid_amount(self.db, booking.id)
            refund = refund_in_place(self.db, booking, amount, external_id=external_id, now=now)
            rows = self.dispatcher.stage(self.db, event_for(booking, EventKind.PAYMENT_REFUNDED, amount=refund.amount))

            if target is not None:
                if refund.amount != paid:
                    raise AmountMismatch(f"A booking that is not done must be refunded in full ({paid})")
                booking.status = target
                booking.cancelled_at = now
                booking.cancelled_by = actor_id
                booking.cancellation_reason = "refunded"
                booking.updated_at = now
                record_event(self.db, booking, BookingAction.CANCEL.value, current, target, actor_id, note="refunded", now=now)
                rows += self.dispatcher.stage(
                    self.db, event_for(booking, EventKind.BOOKING_CANCELLED, actor_id=actor_id, reason="refunded")
                )

        logger.info("Refund of %s recorded for booking %s", refund.amount, booking_id)
        self.dispatcher.deliver(rows)
        return refund

    def ledger_for_booking(self, booking_id: int):
        if self.db.get(Booking, booking_id) is None:
            raise NotFound("Booking not found")
        return self.db.query(Transaction).filter(Transaction.booking_id == booking_id).order_by(Transaction.id).all()

    def reconcile_provider_earnings(self, provider_id: int) -> dict:
        """Rebuild the earnings counters from the ledger and report any drift."""
        with unit_of_work(self.db):
            provider = self.db.query(Provider).filter(Provider.id == provider_id).with_for_update().first()
            if not provider:
                raise NotFound("Provider not found")

            def _sum(status):
                value = self.db.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
                    Transaction.provider_id == provider_id,
                    Transaction.type == TransactionType.PAYOUT,
                    Transaction.status == status,
                ).scalar()
                return to_money(value or 0)

            total = _sum(TransactionStatus.COMPLETED)
            pending = _sum(TransactionStatus.PENDING)
            before = {
                "total_earnings": to_money(provider.total_earnings),
                "pending_earnings": to_money(provider.pending_earnings),
            }
            drift = before["total_earnings"] != total or before["pending_earnings"] != pending
            if drift:
                logger.warning(
                    "Earnings drift for provider %s: counters=%s ledger total=%s pending=%s",
                    provider_id, before, total, pending,
                )
                provider.total_earnings = total
                provider.pending_earnings = pending

        return {
            "provider_id": provider_id,
            "drift": drift,
            "before": before,
            "after": {"total_earnings": total, "pending_earnings": pending},
        }

    def reset_monthly_earnings(self) -> int:
        """Zero this_month_earnings for every provider. Called by the monthly job."""
        with unit_of_work(self.db):
            count = self.db.query(Provider).update(
                {Provider.this_month_earnings: 0}, synchronize_session=False
            )
        logger.info("Monthly earnings reset for %s providers", count)
        return count

    def earnings_summary(self, provider_id: int) -> dict:
        provider = self.db.get(Provider, provider_id)
        if not provider:
            raise NotFound("Provider not found")
        pending_count = self.db.query(func.count(Transaction.id)).filter(
            Transaction.provider_id == provider_id,
            Transaction.type == TransactionType.PAYOUT,
            Transaction.status == TransactionStatus.PENDING,
        ).scalar() or 0
        settled_count = self.db.query(func.count(Transaction.id)).filter(
            Transaction.provider_id == provider_id,
            Transaction.type == TransactionType.PAYOUT,
            Transaction.status == TransactionStatus.COMPLETED,
        ).scalar() or 0
        return {
            "provider_id": provider.id,
            "total_earnings": to_money(provider.total_earnings),
            "this_month_earnings": to_money(provider.this_month_earnings),
            "pending_earnings": to_money(provider.pending_earnings),
            "pending_payouts": int(pending_count),
            "settled_payouts": int(settled_count),
        }
