"""Helpers shared by the booking, ledger, dispute and rating services."""
import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from mh26.core.exceptions import NotFound
from mh26.db.models.booking import Booking
from mh26.db.models.booking_event import BookingEvent
from mh26.db.models.enums import BookingStatus
from mh26.services.notifications import DomainEvent, EventKind

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.utcnow()


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def split_price(actual_price, fee_percent) -> Tuple[Decimal, Decimal]:
    """Return (platform_fee, provider_earnings); the two always add up to the price."""
    price = to_money(actual_price)
    fee = to_money(price * Decimal(str(fee_percent)))
    return fee, price - fee


def lock_booking(db: Session, booking_id: int) -> Booking:
    """Load a booking for update.

    Takes a row lock where the database has one (NOWAIT, so contention
    surfaces at once) and always reloads the row so the caller sees the
    latest committed status and version.
    """
    booking = (
        db.query(Booking)
        .filter(Booking.id == booking_id)
        .with_for_update(nowait=True)
        .populate_existing()
        .first()
    )
    if not booking:
        raise NotFound("Booking not found")
    return booking


def record_event(
    db: Session,
    booking: Booking,
    action: str,
    from_status: Optional[BookingStatus],
    to_status: BookingStatus,
    actor_id: Optional[int],
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BookingEvent:
    event = BookingEvent(
        booking_id=booking.id,
        actor_id=actor_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        note=note,
        created_at=now or utcnow(),
    )
    db.add(event)
    return event


def event_for(booking: Booking, kind: EventKind, **extra) -> DomainEvent:
    return DomainEvent(
        kind=kind,
        booking_id=booking.id,
        customer_user_id=booking.customer_id,
        provider_user_id=booking.provider.user_id,
        service_name=booking.service.name if booking.service else "your service",
        **extra,
    )
