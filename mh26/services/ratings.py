"""Review submission and the provider rating aggregate.

The aggregate is kept as a running mean and updated incrementally:

    new_avg = (old_avg * n + rating) / (n + 1)
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mh26.core.exceptions import DuplicateReview, InvalidTransition, NotFound, PermissionDenied, ValidationFailed
from mh26.db.base import unit_of_work
from mh26.db.models.enums import BookingStatus
from mh26.db.models.provider import Provider
from mh26.db.models.review import Review
from mh26.services.base import event_for, lock_booking, utcnow
from mh26.services.notifications import EventKind, NotificationDispatcher, dispatcher as default_dispatcher

logger = logging.getLogger(__name__)


def add_rating(average: float, count: int, rating: int):
    return (average * count + rating) / (count + 1), count + 1


def remove_rating(average: float, count: int, rating: int):
    if count <= 1:
        return 0.0, 0
    return (average * count - rating) / (count - 1), count - 1


def _lock_provider(db: Session, provider_id: int) -> Provider:
    return (
        db.query(Provider)
        .filter(Provider.id == provider_id)
        .with_for_update()
        .populate_existing()
        .one()
    )


class RatingService:
    def __init__(self, db: Session, dispatcher: Optional[NotificationDispatcher] = None):
        self.db = db
        self.dispatcher = dispatcher or default_dispatcher

    def submit_review(
        self,
        booking_id: int,
        rating: int,
        comment: Optional[str],
        actor_id: int,
        now: Optional[datetime] = None,
    ) -> Review:
        if not 1 <= int(rating) <= 5:
            raise ValidationFailed("Rating must be between 1 and 5")

        with unit_of_work(self.db):
            booking = lock_booking(self.db, booking_id)
            if booking.customer_id != actor_id:
                raise PermissionDenied("Booking does not belong to you")
            if booking.status != BookingStatus.COMPLETED:
                raise InvalidTransition("Can only review completed bookings")

            existing = self.db.query(Review).filter(Review.booking_id == booking_id).first()
            if existing:
                raise DuplicateReview("Review for this booking already exists")

            review = Review(
                booking_id=booking.id,
                customer_id=actor_id,
                provider_id=booking.provider_id,
                rating=int(rating),
                comment=comment,
                created_at=now or utcnow(),
            )
            self.db.add(review)
            try:
                self.db.flush()
            except IntegrityError:
                raise DuplicateReview("Review for this booking already exists") from None

            provider = _lock_provider(self.db, booking.provider_id)
            provider.average_rating, provider.total_ratings = add_rating(
                provider.average_rating or 0.0, provider.total_ratings or 0, review.rating
            )
            rows = self.dispatcher.stage(
                self.db, event_for(booking, EventKind.REVIEW_SUBMITTED, actor_id=actor_id, rating=review.rating)
            )

        logger.info("Review %s (%s stars) added for provider %s", review.id, review.rating, review.provider_id)
        self.dispatcher.deliver(rows)
        return review

    def delete_review(self, review_id: int) -> None:
        with unit_of_work(self.db):
            review = self.db.get(Review, review_id)
            if not review:
                raise NotFound("Review not found")
            provider = _lock_provider(self.db, review.provider_id)
            provider.average_rating, provider.total_ratings = remove_rating(
                provider.average_rating or 0.0, provider.total_ratings or 0, review.rating
            )
            self.db.delete(review)
        logger.info("Review %s deleted", review_id)

    def reviews_for_provider(self, provider_id: int, limit: int = 50):
        return (
            self.db.query(Review)
            .filter(Review.provider_id == provider_id)
            .order_by(Review.created_at.desc())
            .limit(limit)
            .all()
        )
