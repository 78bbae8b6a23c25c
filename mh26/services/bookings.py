"""Booking creation and the single entry point for status changes."""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from mh26.core import config
from mh26.core.exceptions import (
    AmountMismatch,
    CancellationWindowExpired,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    TerminalStateViolation,
    ValidationFailed,
)
from mh26.db.base import unit_of_work
from mh26.db.models.booking import Booking
from mh26.db.models.enums import BookingStatus, PaymentStatus, ProviderStatus, UserRole
from mh26.db.models.provider import Provider
from mh26.db.models.service import Service
from mh26.db.models.user import User
from mh26.services.base import event_for, lock_booking, record_event, split_price, to_money, utcnow
from mh26.services.ledger import amount_due, open_payout, paid_amount, refund_in_place, void_payout
from mh26.services.notifications import EventKind, NotificationDispatcher, dispatcher as default_dispatcher
from mh26.services.state_machine import ADMIN_ONLY_ACTIONS, BookingAction, next_status

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS)

# which booking party may drive each action (admins may drive all of them)
ACTION_ROLES = {
    BookingAction.CONFIRM: {"provider"},
    BookingAction.CANCEL: {"customer", "provider"},
    BookingAction.START: {"provider"},
    BookingAction.COMPLETE: {"provider"},
    BookingAction.DISPUTE: {"customer", "provider"},
    BookingAction.RESOLVE_COMPLETE: set(),
    BookingAction.RESOLVE_CANCEL: set(),
}

EVENT_KINDS = {
    BookingAction.CONFIRM: EventKind.BOOKING_CONFIRMED,
    BookingAction.START: EventKind.BOOKING_STARTED,
    BookingAction.COMPLETE: EventKind.BOOKING_COMPLETED,
    BookingAction.CANCEL: EventKind.BOOKING_CANCELLED,
    BookingAction.DISPUTE: EventKind.BOOKING_DISPUTED,
    BookingAction.RESOLVE_COMPLETE: EventKind.DISPUTE_RESOLVED,
    BookingAction.RESOLVE_CANCEL: EventKind.DISPUTE_RESOLVED,
}


class BookingService:
    def __init__(
        self,
        db: Session,
        fee_percent: float = config.PLATFORM_FEE_PERCENT,
        cancellation_window: timedelta = timedelta(hours=config.CANCELLATION_WINDOW_HOURS),
        start_grace: timedelta = timedelta(minutes=config.START_GRACE_MINUTES),
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.fee_percent = fee_percent
        self.cancellation_window = cancellation_window
        self.start_grace = start_grace
        self.dispatcher = dispatcher or default_dispatcher

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------
    def create_booking(
        self,
        customer_id: int,
        provider_id: int,
        service_id: int,
        scheduled_at: datetime,
        address: str,
        requirements: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = now or utcnow()
        db = self.db

        with unit_of_work(db):
            # serialises concurrent creates by the same customer for the duplicate check below
            customer = db.query(User).filter(User.id == customer_id).with_for_update().populate_existing().first()
            if not customer:
                raise NotFound("Customer not found")
            if not customer.is_active:
                raise PermissionDenied("Your account is suspended. You cannot make bookings while suspended.")

            provider = db.get(Provider, provider_id)
            if not provider or provider.status != ProviderStatus.APPROVED:
                raise NotFound("Provider not found or not approved")
            if provider.user_id == customer_id:
                raise ValidationFailed("You cannot book your own service")

            service = db.get(Service, service_id)
            if not service or service.provider_id != provider.id or not service.is_active:
                raise NotFound("Service not found")

            if scheduled_at <= now:
                raise ValidationFailed("Cannot book a time in the past")
            if not address or not address.strip():
                raise ValidationFailed("Address is required")

            existing = db.query(Booking).filter(
                Booking.customer_id == customer_id,
                Booking.service_id == service_id,
                Booking.status.in_(ACTIVE_STATUSES),
            ).first()
            if existing:
                raise ValidationFailed(
                    "You already have an active booking for this service. Please wait until it is completed."
                )

            booking = Booking(
                customer_id=customer_id,
                provider_id=provider.id,
                service_id=service.id,
                scheduled_at=scheduled_at,
                address=address.strip(),
                requirements=requirements,
                status=BookingStatus.PENDING,
                payment_status=PaymentStatus.UNPAID,
                # captured now so later price edits do not rewrite history
                estimated_price=to_money(service.price),
                created_at=now,
                updated_at=now,
            )
            db.add(booking)
            db.flush()
            record_event(db, booking, "create", None, BookingStatus.PENDING, customer_id, now=now)
            rows = self.dispatcher.stage(db, event_for(booking, EventKind.BOOKING_CREATED, actor_id=customer_id))

        logger.info("Booking %s created by customer %s for service %s", booking.id, customer_id, service_id)
        self.dispatcher.deliver(rows)
        return booking

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    def transition_booking(
        self,
        booking_id: int,
        action,
        actor_id: int,
        payload: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        try:
            action = BookingAction(action)
        except ValueError:
            raise ValidationFailed(f"Unknown booking action: {action}") from None

        now = now or utcnow()
        with unit_of_work(self.db):
            booking = lock_booking(self.db, booking_id)
            rows = self.apply(booking, action, actor_id, payload or {}, now)

        self.dispatcher.deliver(rows)
        return booking

    def actor_role(self, booking: Booking, actor: User) -> Optional[str]:
        if actor.role == UserRole.ADMIN:
            return "admin"
        if actor.id == booking.customer_id:
            return "customer"
        if actor.id == booking.provider.user_id:
            return "provider"
        return None

    def apply(self, booking: Booking, action: BookingAction, actor_id: int, payload: dict, now: datetime):
        """Run one transition on a locked booking inside the caller's unit of work.

        Returns the staged notification rows; the caller delivers them
        after commit.
        """
        actor = self.db.get(User, actor_id)
        if not actor:
            raise NotFound("User not found")

        current = booking.status
        try:
            target = next_status(current, action)
        except (InvalidTransition, TerminalStateViolation) as exc:
            logger.warning("Rejected %s on booking %s (%s): %s", action.value, booking.id, current.value, exc.detail)
            raise

        role = self.actor_role(booking, actor)
        if role != "admin" and (role is None or role not in ACTION_ROLES[action]):
            if action in ADMIN_ONLY_ACTIONS:
                raise PermissionDenied("Only an admin can resolve a disputed booking")
            raise PermissionDenied(f"You are not allowed to {action.value} this booking")

        extra = {}
        if action == BookingAction.CONFIRM:
            self._confirm(booking, role, now)
        elif action == BookingAction.CANCEL:
            self._cancel(booking, actor, role, payload.get("reason"), now)
            extra["reason"] = payload.get("reason")
        elif action == BookingAction.START:
            self._start(booking, now)
        elif action == BookingAction.COMPLETE:
            self._complete(booking, payload.get("actual_price"), now)
            extra["amount"] = booking.provider_earnings
        elif action == BookingAction.DISPUTE:
            booking.status_before_dispute = current
            booking.disputed_at = now
            extra["report_id"] = payload.get("report_id")
        elif action == BookingAction.RESOLVE_COMPLETE:
            if booking.actual_price is None:
                self._complete(booking, payload.get("actual_price"), now)
                extra["amount"] = booking.provider_earnings
            extra["outcome"] = "completed"
        elif action == BookingAction.RESOLVE_CANCEL:
            self._resolve_cancel(booking, actor, payload.get("reason"), now)
            extra["outcome"] = "cancelled"

        booking.status = target
        booking.updated_at = now
        record_event(self.db, booking, action.value, current, target, actor.id, note=payload.get("note") or payload.get("reason"), now=now)
        logger.info(
            "Booking %s %s -> %s by %s %s", booking.id, current.value, target.value, role, actor.id
        )
        return self.dispatcher.stage(self.db, event_for(booking, EVENT_KINDS[action], actor_id=actor.id, **extra))

    def _confirm(self, booking: Booking, role: str, now: datetime):
        if role == "provider" and booking.provider.status != ProviderStatus.APPROVED:
            raise PermissionDenied(
                f"Your provider account is {booking.provider.status.value.lower()}. "
                "Only approved providers can accept bookings."
            )
        booking.confirmed_at = now

    def _cancel(self, booking: Booking, actor: User, role: str, reason: Optional[str], now: datetime):
        inside_window = now > booking.scheduled_at - self.cancellation_window
        if inside_window:
            if role == "customer":
                raise CancellationWindowExpired(
                    "Bookings can only be cancelled up to "
                    f"{self.cancellation_window.total_seconds() / 3600:g} hours before the scheduled time"
                )
            if role == "provider":
                booking.flagged_for_review = True
                logger.warning("Provider cancelled booking %s inside the cancellation window", booking.id)
        booking.cancelled_at = now
        booking.cancelled_by = actor.id
        booking.cancellation_reason = reason

    def _start(self, booking: Booking, now: datetime):
        if now < booking.scheduled_at - self.start_grace:
            raise InvalidTransition("Service cannot be started before its scheduled time")
        booking.started_at = now

    def _complete(self, booking: Booking, actual_price, now: datetime):
        if booking.platform_fee is not None:
            raise InvalidTransition("Booking financials were already computed")
        price = to_money(actual_price if actual_price is not None else booking.estimated_price)
        if price <= 0:
            raise ValidationFailed("Actual price must be positive")
        if booking.payment_status == PaymentStatus.REFUNDED:
            raise InvalidTransition("A refunded booking cannot be completed")
        if booking.payment_status == PaymentStatus.PAID:
            paid = paid_amount(self.db, booking.id)
            if paid > price:
                raise AmountMismatch(f"Customer already paid {paid}, more than the final price {price}")
            if paid < price:
                # the balance is collected with another record_payment
                booking.payment_status = PaymentStatus.UNPAID
                logger.info("Booking %s completed at %s with %s paid, balance due", booking.id, price, paid)

        fee, earnings = split_price(price, self.fee_percent)
        booking.actual_price = price
        booking.platform_fee = fee
        booking.provider_earnings = earnings
        booking.completed_at = now
        # the payout stays PENDING until the customer has paid and it is settled
        open_payout(self.db, booking, now=now)

    def _resolve_cancel(self, booking: Booking, actor: User, reason: Optional[str], now: datetime):
        void_payout(self.db, booking, note="voided by dispute resolution")
        if booking.payment_status == PaymentStatus.PAID:
            refund_in_place(self.db, booking, paid_amount(self.db, booking.id), now=now)
        booking.cancelled_at = now
        booking.cancelled_by = actor.id
        booking.cancellation_reason = reason

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_booking_for(self, booking_id: int, user: User) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if not booking:
            raise NotFound("Booking not found")
        if self.actor_role(booking, user) is None:
            raise PermissionDenied("Unauthorized")
        return booking

    def invoice(self, booking_id: int, user: User) -> dict:
        booking = self.get_booking_for(booking_id, user)
        price = booking.actual_price if booking.actual_price is not None else booking.estimated_price
        balance = max(amount_due(self.db, booking), Decimal("0.00"))
        if booking.status == BookingStatus.CANCELLED or booking.payment_status == PaymentStatus.REFUNDED:
            balance = Decimal("0.00")
        return {
            "invoice_number": f"INV-{booking.id:08d}",
            "date": booking.created_at,
            "booking_id": booking.id,
            "service_name": booking.service.name,
            "status": booking.status,
            "payment_status": booking.payment_status,
            "total": to_money(price),
            "amount_paid": paid_amount(self.db, booking.id),
            "balance_due": balance,
            # platform split is only shown to the provider and admins
            "platform_fee": booking.platform_fee if self.actor_role(booking, user) != "customer" else None,
            "provider_earnings": booking.provider_earnings if self.actor_role(booking, user) != "customer" else None,
        }
