"""Two sessions racing on one booking, and rollback of half-done work."""
from decimal import Decimal

import pytest

from conftest import NOW, SCHEDULED
from mh26.core.exceptions import ConcurrencyConflict, TerminalStateViolation
from mh26.db.base import unit_of_work
from mh26.db.models.booking import Booking
from mh26.db.models.booking_event import BookingEvent
from mh26.db.models.enums import BookingStatus, TransactionType
from mh26.db.models.provider import Provider
from mh26.db.models.transaction import Transaction
from mh26.services import bookings as bookings_module
from mh26.services.base import lock_booking
from mh26.services.bookings import BookingService
from mh26.services.state_machine import BookingAction


@pytest.fixture()
def in_progress(make_booking):
    return make_booking(BookingAction.CONFIRM, BookingAction.START)


def test_racing_completions_produce_one_payout(session_factory, in_progress, provider):
    first, second = session_factory(), session_factory()
    try:
        # both requests read the booking while it is still IN_PROGRESS
        stale = lock_booking(second, in_progress.id)
        assert stale.status == BookingStatus.IN_PROGRESS

        BookingService(first).transition_booking(in_progress.id, BookingAction.COMPLETE, provider.user_id, now=SCHEDULED)

        with pytest.raises(ConcurrencyConflict) as exc:
            with unit_of_work(second):
                BookingService(second).apply(stale, BookingAction.COMPLETE, provider.user_id, {}, SCHEDULED)
        assert exc.value.retryable

        # a retry sees the committed state
        with pytest.raises(TerminalStateViolation):
            BookingService(second).transition_booking(in_progress.id, BookingAction.COMPLETE, provider.user_id, now=SCHEDULED)
    finally:
        first.close()
        second.close()

    check = session_factory()
    try:
        payouts = check.query(Transaction).filter(Transaction.type == TransactionType.PAYOUT).all()
        assert len(payouts) == 1
        assert check.get(Provider, provider.id).pending_earnings == Decimal("765.00")
        actions = [e.action for e in check.query(BookingEvent).filter(BookingEvent.booking_id == in_progress.id)]
        assert actions.count("complete") == 1
    finally:
        check.close()


def test_cancel_racing_start_leaves_one_outcome(session_factory, make_booking, customer, provider):
    booking = make_booking(BookingAction.CONFIRM)
    first, second = session_factory(), session_factory()
    try:
        stale = lock_booking(second, booking.id)
        BookingService(first).transition_booking(booking.id, BookingAction.START, provider.user_id, now=SCHEDULED)

        with pytest.raises(ConcurrencyConflict):
            with unit_of_work(second):
                BookingService(second).apply(stale, BookingAction.CANCEL, customer.id, {}, SCHEDULED.replace(hour=0))
    finally:
        first.close()
        second.close()

    check = session_factory()
    try:
        assert check.get(Booking, booking.id).status == BookingStatus.IN_PROGRESS
    finally:
        check.close()


def test_failure_mid_completion_rolls_everything_back(db, monkeypatch, in_progress, provider):
    def broken_open_payout(db, booking, now=None):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(bookings_module, "open_payout", broken_open_payout)

    with pytest.raises(RuntimeError):
        BookingService(db).transition_booking(in_progress.id, BookingAction.COMPLETE, provider.user_id, now=SCHEDULED)

    db.refresh(in_progress)
    assert in_progress.status == BookingStatus.IN_PROGRESS
    assert in_progress.platform_fee is None
    assert in_progress.provider_earnings is None
    assert db.query(Transaction).count() == 0
    assert db.query(BookingEvent).filter(BookingEvent.action == "complete").count() == 0
    db.refresh(provider)
    assert provider.pending_earnings == Decimal("0.00")


def test_overlapping_creates_for_one_customer_leave_one_booking(session_factory, monkeypatch, customer, provider, service):
    first, second = session_factory(), session_factory()
    outcomes = []
    real_record_event = bookings_module.record_event

    def record_then_race(db, booking, action, *args, **kwargs):
        real_record_event(db, booking, action, *args, **kwargs)
        if action == "create" and not outcomes:
            # a second request for the same service arrives before the first commits
            try:
                BookingService(second).create_booking(
                    customer.id, provider.id, service.id, SCHEDULED, "12 Marine Drive, Mumbai", now=NOW
                )
                outcomes.append("created")
            except ConcurrencyConflict:
                outcomes.append("conflict")

    monkeypatch.setattr(bookings_module, "record_event", record_then_race)
    try:
        BookingService(first).create_booking(
            customer.id, provider.id, service.id, SCHEDULED, "12 Marine Drive, Mumbai", now=NOW
        )
    finally:
        first.close()
        second.close()

    assert outcomes == ["conflict"]
    check = session_factory()
    try:
        assert check.query(Booking).filter(Booking.customer_id == customer.id).count() == 1
        assert check.query(BookingEvent).filter(BookingEvent.action == "create").count() == 1
    finally:
        check.close()
