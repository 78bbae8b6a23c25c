from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW, SCHEDULED
from mh26.core.exceptions import (
    CancellationWindowExpired,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    TerminalStateViolation,
    ValidationFailed,
)
from mh26.db.models.booking_event import BookingEvent
from mh26.db.models.enums import BookingStatus, PaymentStatus, ProviderStatus, TransactionStatus, TransactionType
from mh26.db.models.transaction import Transaction
from mh26.services.state_machine import BookingAction


def test_create_booking_captures_price(db, bookings, customer, provider, service):
    booking = bookings.create_booking(customer.id, provider.id, service.id, SCHEDULED, "  Flat 4, Bandra  ", now=NOW)

    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.UNPAID
    assert booking.estimated_price == Decimal("850.00")
    assert booking.address == "Flat 4, Bandra"
    assert booking.version == 1

    # later price edits leave the booking alone
    service.price = Decimal("999.00")
    db.commit()
    db.refresh(booking)
    assert booking.estimated_price == Decimal("850.00")


def test_create_booking_validations(db, factory, bookings, customer, provider, service):
    with pytest.raises(ValidationFailed):
        bookings.create_booking(customer.id, provider.id, service.id, NOW - timedelta(hours=1), "addr", now=NOW)
    with pytest.raises(ValidationFailed):
        bookings.create_booking(customer.id, provider.id, service.id, SCHEDULED, "   ", now=NOW)
    with pytest.raises(ValidationFailed):
        bookings.create_booking(provider.user_id, provider.id, service.id, SCHEDULED, "addr", now=NOW)

    pending = factory.provider(status=ProviderStatus.PENDING)
    other_service = factory.service(pending)
    with pytest.raises(NotFound):
        bookings.create_booking(customer.id, pending.id, other_service.id, SCHEDULED, "addr", now=NOW)

    # service must belong to the provider
    with pytest.raises(NotFound):
        bookings.create_booking(customer.id, provider.id, other_service.id, SCHEDULED, "addr", now=NOW)


def test_suspended_customer_cannot_book(factory, bookings, provider, service):
    suspended = factory.customer(is_active=False)
    with pytest.raises(PermissionDenied):
        bookings.create_booking(suspended.id, provider.id, service.id, SCHEDULED, "addr", now=NOW)


def test_duplicate_active_booking_rejected(make_booking, bookings, customer, provider, service):
    make_booking()
    with pytest.raises(ValidationFailed):
        bookings.create_booking(customer.id, provider.id, service.id, SCHEDULED, "addr", now=NOW)


def test_complete_splits_price_and_opens_payout(db, completed_booking, provider):
    booking = completed_booking

    assert booking.status == BookingStatus.COMPLETED
    assert booking.actual_price == Decimal("850.00")
    assert booking.platform_fee == Decimal("85.00")
    assert booking.provider_earnings == Decimal("765.00")
    assert booking.platform_fee + booking.provider_earnings == booking.actual_price

    payouts = db.query(Transaction).filter(Transaction.type == TransactionType.PAYOUT).all()
    assert len(payouts) == 1
    assert payouts[0].status == TransactionStatus.PENDING
    assert payouts[0].amount == Decimal("765.00")

    db.refresh(provider)
    assert provider.pending_earnings == Decimal("765.00")
    assert provider.total_earnings == Decimal("0.00")


def test_complete_with_actual_price_rounds_to_cents(bookings, make_booking, provider):
    booking = make_booking(BookingAction.CONFIRM, BookingAction.START)
    booking = bookings.transition_booking(
        booking.id, BookingAction.COMPLETE, provider.user_id, {"actual_price": Decimal("333.33")}, now=SCHEDULED
    )
    assert booking.platform_fee == Decimal("33.33")
    assert booking.provider_earnings == Decimal("300.00")


def test_customer_cancel_outside_window(bookings, make_booking, customer):
    booking = make_booking(BookingAction.CONFIRM)
    booking = bookings.transition_booking(
        booking.id, BookingAction.CANCEL, customer.id, {"reason": "plans changed"}, now=SCHEDULED - timedelta(hours=3)
    )
    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancelled_by == customer.id
    assert booking.cancellation_reason == "plans changed"
    assert not booking.flagged_for_review


def test_customer_cancel_inside_window_rejected(db, bookings, make_booking, customer):
    booking = make_booking(BookingAction.CONFIRM)
    with pytest.raises(CancellationWindowExpired):
        bookings.transition_booking(booking.id, BookingAction.CANCEL, customer.id, now=SCHEDULED - timedelta(hours=1))
    db.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED


def test_provider_cancel_inside_window_is_flagged(bookings, make_booking, provider):
    booking = make_booking()
    booking = bookings.transition_booking(
        booking.id, BookingAction.CANCEL, provider.user_id, now=SCHEDULED - timedelta(minutes=30)
    )
    assert booking.status == BookingStatus.CANCELLED
    assert booking.flagged_for_review


def test_start_too_early_rejected(bookings, make_booking, provider):
    booking = make_booking(BookingAction.CONFIRM)
    with pytest.raises(InvalidTransition):
        bookings.transition_booking(booking.id, BookingAction.START, provider.user_id, now=SCHEDULED - timedelta(hours=1))

    booking = bookings.transition_booking(
        booking.id, BookingAction.START, provider.user_id, now=SCHEDULED - timedelta(minutes=10)
    )
    assert booking.status == BookingStatus.IN_PROGRESS


def test_terminal_booking_is_frozen(db, bookings, completed_booking, customer, provider):
    for action, actor in [
        (BookingAction.CANCEL, customer.id),
        (BookingAction.COMPLETE, provider.user_id),
        (BookingAction.CONFIRM, provider.user_id),
    ]:
        with pytest.raises(TerminalStateViolation):
            bookings.transition_booking(completed_booking.id, action, actor, now=SCHEDULED)

    assert db.query(Transaction).filter(Transaction.type == TransactionType.PAYOUT).count() == 1


def test_only_provider_can_confirm(bookings, make_booking, customer, factory):
    booking = make_booking()
    with pytest.raises(PermissionDenied):
        bookings.transition_booking(booking.id, BookingAction.CONFIRM, customer.id, now=NOW)
    stranger = factory.customer()
    with pytest.raises(PermissionDenied):
        bookings.transition_booking(booking.id, BookingAction.CANCEL, stranger.id, now=NOW)


def test_suspended_provider_cannot_confirm(db, bookings, make_booking, provider):
    booking = make_booking()
    provider.status = ProviderStatus.SUSPENDED
    db.commit()
    with pytest.raises(PermissionDenied):
        bookings.transition_booking(booking.id, BookingAction.CONFIRM, provider.user_id, now=NOW)


def test_admin_can_cancel_inside_window(bookings, make_booking, admin):
    booking = make_booking(BookingAction.CONFIRM)
    booking = bookings.transition_booking(booking.id, BookingAction.CANCEL, admin.id, now=SCHEDULED - timedelta(minutes=5))
    assert booking.status == BookingStatus.CANCELLED
    assert not booking.flagged_for_review


def test_unknown_action_rejected(bookings, make_booking, provider):
    booking = make_booking()
    with pytest.raises(ValidationFailed):
        bookings.transition_booking(booking.id, "teleport", provider.user_id)


def test_every_transition_is_audited(db, completed_booking, customer, provider):
    events = db.query(BookingEvent).filter(BookingEvent.booking_id == completed_booking.id).order_by(BookingEvent.id).all()
    assert [e.action for e in events] == ["create", "confirm", "start", "complete"]
    assert events[0].actor_id == customer.id
    assert events[0].from_status is None
    assert events[-1].from_status == BookingStatus.IN_PROGRESS
    assert events[-1].to_status == BookingStatus.COMPLETED
    assert all(e.actor_id == provider.user_id for e in events[1:])


def test_invoice_hides_split_from_customer(bookings, completed_booking, customer, provider):
    invoice = bookings.invoice(completed_booking.id, customer)
    assert invoice["total"] == Decimal("850.00")
    assert invoice["platform_fee"] is None

    invoice = bookings.invoice(completed_booking.id, provider.user)
    assert invoice["platform_fee"] == Decimal("85.00")
    assert invoice["invoice_number"] == f"INV-{completed_booking.id:08d}"
