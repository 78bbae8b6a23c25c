"""Notification fan-out for booking and payment events.

``notifications_for`` is a pure mapping from a domain event to the
notifications each affected user should get. Each notification type has
its own payload model; the ``type`` field is the discriminator.
"""
import logging
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Protocol, Union

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from mh26.db.models.notification import Notification

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_STARTED = "booking_started"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_DISPUTED = "booking_disputed"
    DISPUTE_RESOLVED = "dispute_resolved"
    PAYMENT_RECEIVED = "payment_received"
    PAYOUT_SETTLED = "payout_settled"
    PAYMENT_REFUNDED = "payment_refunded"
    REVIEW_SUBMITTED = "review_submitted"


class DomainEvent(BaseModel):
    kind: EventKind
    booking_id: int
    customer_user_id: int
    provider_user_id: int
    actor_id: Optional[int] = None
    service_name: str = "your service"
    amount: Optional[Decimal] = None
    reason: Optional[str] = None
    rating: Optional[int] = None
    report_id: Optional[int] = None
    outcome: Optional[str] = None


# --- payload variants ---

class BookingRequestPayload(BaseModel):
    type: Literal["BOOKING_REQUEST"] = "BOOKING_REQUEST"
    booking_id: int


class BookingConfirmedPayload(BaseModel):
    type: Literal["BOOKING_CONFIRMED"] = "BOOKING_CONFIRMED"
    booking_id: int


class BookingStartedPayload(BaseModel):
    type: Literal["BOOKING_STARTED"] = "BOOKING_STARTED"
    booking_id: int


class RateServicePayload(BaseModel):
    type: Literal["RATE_SERVICE"] = "RATE_SERVICE"
    booking_id: int


class PayoutPendingPayload(BaseModel):
    type: Literal["PAYOUT_PENDING"] = "PAYOUT_PENDING"
    booking_id: int
    amount: Decimal


class BookingCancelledPayload(BaseModel):
    type: Literal["BOOKING_CANCELLED"] = "BOOKING_CANCELLED"
    booking_id: int
    cancelled_by: Optional[int] = None
    reason: Optional[str] = None


class BookingDisputedPayload(BaseModel):
    type: Literal["BOOKING_DISPUTED"] = "BOOKING_DISPUTED"
    booking_id: int
    report_id: Optional[int] = None


class DisputeResolvedPayload(BaseModel):
    type: Literal["DISPUTE_RESOLVED"] = "DISPUTE_RESOLVED"
    booking_id: int
    outcome: str


class PaymentReceivedPayload(BaseModel):
    type: Literal["PAYMENT_RECEIVED"] = "PAYMENT_RECEIVED"
    booking_id: int
    amount: Decimal


class PayoutSettledPayload(BaseModel):
    type: Literal["PAYOUT_SETTLED"] = "PAYOUT_SETTLED"
    booking_id: int
    amount: Decimal


class PaymentRefundedPayload(BaseModel):
    type: Literal["PAYMENT_REFUNDED"] = "PAYMENT_REFUNDED"
    booking_id: int
    amount: Decimal


class ReviewReceivedPayload(BaseModel):
    type: Literal["REVIEW_RECEIVED"] = "REVIEW_RECEIVED"
    booking_id: int
    rating: int


NotificationPayload = Annotated[
    Union[
        BookingRequestPayload,
        BookingConfirmedPayload,
        BookingStartedPayload,
        RateServicePayload,
        PayoutPendingPayload,
        BookingCancelledPayload,
        BookingDisputedPayload,
        DisputeResolvedPayload,
        PaymentReceivedPayload,
        PayoutSettledPayload,
        PaymentRefundedPayload,
        ReviewReceivedPayload,
    ],
    Field(discriminator="type"),
]


class NotificationDraft(BaseModel):
    user_id: int
    title: str
    body: str
    payload: NotificationPayload


def _cancel_recipients(event: DomainEvent) -> List[int]:
    # the party that cancelled already knows; an admin cancel informs both
    if event.actor_id == event.customer_user_id:
        return [event.provider_user_id]
    if event.actor_id == event.provider_user_id:
        return [event.customer_user_id]
    return [event.customer_user_id, event.provider_user_id]


def notifications_for(event: DomainEvent) -> List[NotificationDraft]:
    b = event.booking_id
    customer, provider = event.customer_user_id, event.provider_user_id
    svc = event.service_name
    kind = event.kind

    if kind == EventKind.BOOKING_CREATED:
        return [NotificationDraft(
            user_id=provider, title="New Booking Request",
            body=f"You have a new booking request for {svc}",
            payload=BookingRequestPayload(booking_id=b),
        )]
    if kind == EventKind.BOOKING_CONFIRMED:
        return [NotificationDraft(
            user_id=customer, title="Booking Confirmed",
            body=f"Provider accepted your booking for {svc}",
            payload=BookingConfirmedPayload(booking_id=b),
        )]
    if kind == EventKind.BOOKING_STARTED:
        return [NotificationDraft(
            user_id=customer, title="Service Started",
            body=f"Provider has started working on {svc}",
            payload=BookingStartedPayload(booking_id=b),
        )]
    if kind == EventKind.BOOKING_COMPLETED:
        return [
            NotificationDraft(
                user_id=customer, title="Service Completed",
                body=f"{svc} is complete. Please rate your provider",
                payload=RateServicePayload(booking_id=b),
            ),
            NotificationDraft(
                user_id=provider, title="Payout Pending",
                body=f"Earnings of {event.amount} for {svc} are pending settlement",
                payload=PayoutPendingPayload(booking_id=b, amount=event.amount),
            ),
        ]
    if kind == EventKind.BOOKING_CANCELLED:
        return [
            NotificationDraft(
                user_id=uid, title="Booking Cancelled",
                body=f"Booking for {svc} was cancelled",
                payload=BookingCancelledPayload(booking_id=b, cancelled_by=event.actor_id, reason=event.reason),
            )
            for uid in _cancel_recipients(event)
        ]
    if kind == EventKind.BOOKING_DISPUTED:
        return [
            NotificationDraft(
                user_id=uid, title="Booking Under Review",
                body=f"A report was filed for {svc}. An admin will review it",
                payload=BookingDisputedPayload(booking_id=b, report_id=event.report_id),
            )
            for uid in (customer, provider)
        ]
    if kind == EventKind.DISPUTE_RESOLVED:
        drafts = [
            NotificationDraft(
                user_id=uid, title="Dispute Resolved",
                body=f"The dispute for {svc} was resolved: {event.outcome}",
                payload=DisputeResolvedPayload(booking_id=b, outcome=event.outcome or ""),
            )
            for uid in (customer, provider)
        ]
        if event.amount is not None:
            # resolved as completed: the provider now has a payout waiting
            drafts.append(NotificationDraft(
                user_id=provider, title="Payout Pending",
                body=f"Earnings of {event.amount} for {svc} are pending settlement",
                payload=PayoutPendingPayload(booking_id=b, amount=event.amount),
            ))
        return drafts
    if kind == EventKind.PAYMENT_RECEIVED:
        return [NotificationDraft(
            user_id=provider, title="Payment Received",
            body=f"Customer paid {event.amount} for {svc}",
            payload=PaymentReceivedPayload(booking_id=b, amount=event.amount),
        )]
    if kind == EventKind.PAYOUT_SETTLED:
        return [NotificationDraft(
            user_id=provider, title="Payout Settled",
            body=f"{event.amount} for {svc} was added to your earnings",
            payload=PayoutSettledPayload(booking_id=b, amount=event.amount),
        )]
    if kind == EventKind.PAYMENT_REFUNDED:
        return [NotificationDraft(
            user_id=customer, title="Payment Refunded",
            body=f"{event.amount} for {svc} was refunded",
            payload=PaymentRefundedPayload(booking_id=b, amount=event.amount),
        )]
    if kind == EventKind.REVIEW_SUBMITTED:
        return [NotificationDraft(
            user_id=provider, title="New Review",
            body=f"You received a {event.rating}-star review for {svc}",
            payload=ReviewReceivedPayload(booking_id=b, rating=event.rating),
        )]
    return []


class NotificationChannel(Protocol):
    def send(self, user_id: int, type: str, payload: dict) -> None: ...


class LoggingChannel:
    """Default channel: delivery is external, so just record the hand-off."""

    def send(self, user_id: int, type: str, payload: dict) -> None:
        logger.info("notify user=%s type=%s booking=%s", user_id, type, payload.get("booking_id"))


class NotificationDispatcher:
    def __init__(self, channel: Optional[NotificationChannel] = None):
        self.channel = channel or LoggingChannel()

    def stage(self, db: Session, event: DomainEvent) -> List[Notification]:
        """Add the event's notifications to the caller's unit of work."""
        rows = []
        for draft in notifications_for(event):
            row = Notification(
                user_id=draft.user_id,
                type=draft.payload.type,
                title=draft.title,
                body=draft.body,
                payload=draft.payload.model_dump(mode="json"),
                read=False,
            )
            db.add(row)
            rows.append(row)
        return rows

    def deliver(self, rows: List[Notification]) -> None:
        """Hand committed notifications to the channel. Failures only log."""
        for row in rows:
            try:
                self.channel.send(row.user_id, row.type, row.payload)
            except Exception:
                logger.error("Notification delivery failed for user %s", row.user_id, exc_info=True)


dispatcher = NotificationDispatcher()
