"""Admin analytics over bookings and the provider directory."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from mh26.db.models.booking import Booking
from mh26.db.models.category import Category
from mh26.db.models.enums import BookingStatus, PaymentStatus, ProviderStatus
from mh26.db.models.provider import Provider
from mh26.db.models.user import User
from mh26.services.base import to_money, utcnow

logger = logging.getLogger(__name__)


def last_months(now: datetime, count: int = 6) -> List[str]:
    """``YYYY-MM`` keys for the ``count`` months ending with ``now``'s month, oldest first."""
    keys = []
    year, month = now.year, now.month
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def _earning_bookings(db: Session):
    # refunded jobs earned the platform nothing
    return db.query(Booking).filter(
        Booking.status == BookingStatus.COMPLETED,
        Booking.payment_status != PaymentStatus.REFUNDED,
    )


def platform_analytics(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()

    total_users = db.query(func.count(User.id)).scalar() or 0
    total_providers = db.query(func.count(Provider.id)).filter(Provider.status == ProviderStatus.APPROVED).scalar() or 0
    pending = db.query(func.count(Provider.id)).filter(Provider.status == ProviderStatus.PENDING).scalar() or 0
    total_bookings = db.query(func.count(Booking.id)).scalar() or 0
    completed = db.query(func.count(Booking.id)).filter(Booking.status == BookingStatus.COMPLETED).scalar() or 0

    revenue_by_month = {key: Decimal("0.00") for key in last_months(now)}
    total_revenue = Decimal("0.00")
    for booking in _earning_bookings(db).all():
        fee = to_money(booking.platform_fee or 0)
        total_revenue += fee
        if booking.completed_at is not None:
            key = booking.completed_at.strftime("%Y-%m")
            if key in revenue_by_month:
                revenue_by_month[key] += fee

    category_rows = (
        db.query(Category.name, func.count(Provider.id))
        .join(Provider, Provider.category_id == Category.id)
        .filter(Provider.status == ProviderStatus.APPROVED)
        .group_by(Category.name)
        .order_by(Category.name)
        .all()
    )

    top_providers = (
        db.query(Provider)
        .filter(Provider.status == ProviderStatus.APPROVED)
        .order_by(Provider.average_rating.desc(), Provider.total_ratings.desc(), Provider.id)
        .limit(10)
        .all()
    )
    recent_bookings = db.query(Booking).order_by(Booking.created_at.desc(), Booking.id.desc()).limit(10).all()

    logger.info("Analytics computed: %s bookings, revenue %s", total_bookings, total_revenue)
    return {
        "stats": {
            "total_users": int(total_users),
            "total_providers": int(total_providers),
            "pending_providers": int(pending),
            "total_bookings": int(total_bookings),
            "completed_bookings": int(completed),
            "total_revenue": total_revenue,
        },
        "revenue_growth": [{"month": key, "revenue": value} for key, value in revenue_by_month.items()],
        "category_distribution": [{"name": name, "value": int(count)} for name, count in category_rows],
        "top_providers": top_providers,
        "recent_bookings": recent_bookings,
    }
