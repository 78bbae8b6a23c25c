from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW, SCHEDULED
from mh26.core.exceptions import CancellationWindowExpired
from mh26.db.models.enums import BookingStatus
from mh26.db.models.notification import Notification
from mh26.services.bookings import BookingService
from mh26.services.notifications import DomainEvent, EventKind, NotificationDispatcher, notifications_for
from mh26.services.state_machine import BookingAction

CUSTOMER, PROVIDER, ADMIN = 10, 20, 99


def _event(kind, **extra):
    return DomainEvent(kind=kind, booking_id=1, customer_user_id=CUSTOMER, provider_user_id=PROVIDER, **extra)


class RecordingChannel:
    def __init__(self):
        self.sent = []

    def send(self, user_id, type, payload):
        self.sent.append((user_id, type, payload))


class BrokenChannel:
    def send(self, user_id, type, payload):
        raise ConnectionError("push gateway down")


def test_new_booking_notifies_provider():
    [draft] = notifications_for(_event(EventKind.BOOKING_CREATED, actor_id=CUSTOMER))
    assert draft.user_id == PROVIDER
    assert draft.payload.type == "BOOKING_REQUEST"


def test_completion_asks_for_rating_and_announces_payout():
    drafts = notifications_for(_event(EventKind.BOOKING_COMPLETED, amount=Decimal("765.00")))
    assert {(d.user_id, d.payload.type) for d in drafts} == {(CUSTOMER, "RATE_SERVICE"), (PROVIDER, "PAYOUT_PENDING")}


@pytest.mark.parametrize(
    "actor, recipients",
    [(CUSTOMER, [PROVIDER]), (PROVIDER, [CUSTOMER]), (ADMIN, [CUSTOMER, PROVIDER])],
)
def test_cancel_notifies_the_other_party(actor, recipients):
    drafts = notifications_for(_event(EventKind.BOOKING_CANCELLED, actor_id=actor, reason="sick"))
    assert [d.user_id for d in drafts] == recipients
    assert all(d.payload.cancelled_by == actor for d in drafts)


def test_dispute_and_resolution_notify_both_parties():
    disputed = notifications_for(_event(EventKind.BOOKING_DISPUTED, report_id=3))
    resolved = notifications_for(_event(EventKind.DISPUTE_RESOLVED, outcome="cancelled"))
    assert sorted(d.user_id for d in disputed) == [CUSTOMER, PROVIDER]
    assert all(d.payload.outcome == "cancelled" for d in resolved)


def test_resolution_as_completed_announces_the_payout():
    drafts = notifications_for(_event(EventKind.DISPUTE_RESOLVED, outcome="completed", amount=Decimal("450.00")))
    assert [(d.user_id, d.payload.type) for d in drafts] == [
        (CUSTOMER, "DISPUTE_RESOLVED"), (PROVIDER, "DISPUTE_RESOLVED"), (PROVIDER, "PAYOUT_PENDING"),
    ]
    assert drafts[-1].payload.amount == Decimal("450.00")


def test_payload_serializes_money_as_string():
    [draft] = notifications_for(_event(EventKind.PAYOUT_SETTLED, amount=Decimal("765.00")))
    assert draft.payload.model_dump(mode="json") == {"type": "PAYOUT_SETTLED", "booking_id": 1, "amount": "765.00"}


def test_completion_stages_rows_and_delivers(db, customer, provider, service):
    channel = RecordingChannel()
    svc = BookingService(db, dispatcher=NotificationDispatcher(channel))
    booking = svc.create_booking(customer.id, provider.id, service.id, SCHEDULED, "addr", now=NOW)
    for action in (BookingAction.CONFIRM, BookingAction.START, BookingAction.COMPLETE):
        svc.transition_booking(booking.id, action, provider.user_id, now=SCHEDULED)

    types = [t for _, t, _ in channel.sent]
    assert types == ["BOOKING_REQUEST", "BOOKING_CONFIRMED", "BOOKING_STARTED", "RATE_SERVICE", "PAYOUT_PENDING"]

    payout_note = db.query(Notification).filter(Notification.type == "PAYOUT_PENDING").one()
    assert payout_note.user_id == provider.user_id
    assert payout_note.payload == {"type": "PAYOUT_PENDING", "booking_id": booking.id, "amount": "765.00"}
    assert payout_note.read is False


def test_delivery_failure_does_not_undo_the_transition(db, customer, provider, service):
    svc = BookingService(db, dispatcher=NotificationDispatcher(BrokenChannel()))
    booking = svc.create_booking(customer.id, provider.id, service.id, SCHEDULED, "addr", now=NOW)
    booking = svc.transition_booking(booking.id, BookingAction.CONFIRM, provider.user_id, now=NOW)

    assert booking.status == BookingStatus.CONFIRMED
    assert db.query(Notification).count() == 2


def test_rejected_transition_leaves_no_notification(db, customer, provider, service):
    channel = RecordingChannel()
    svc = BookingService(db, dispatcher=NotificationDispatcher(channel))
    booking = svc.create_booking(customer.id, provider.id, service.id, SCHEDULED, "addr", now=NOW)
    with pytest.raises(CancellationWindowExpired):
        svc.transition_booking(booking.id, BookingAction.CANCEL, customer.id, now=SCHEDULED - timedelta(minutes=30))

    assert db.query(Notification).filter(Notification.type == "BOOKING_CANCELLED").count() == 0
    assert [t for _, t, _ in channel.sent] == ["BOOKING_REQUEST"]
