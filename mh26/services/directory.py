"""Provider listings: the public directory and the admin approval queue."""
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from mh26.db.models.enums import ProviderStatus
from mh26.db.models.provider import Provider


def search_providers(
    db: Session,
    city: Optional[str] = None,
    category_id: Optional[int] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """
    Approved providers, best rated first.
    - `q` is a case-insensitive partial match on business name and description
    """
    base = db.query(Provider).filter(Provider.status == ProviderStatus.APPROVED)

    if city:
        base = base.filter(Provider.city.ilike(city.strip()))
    if category_id:
        base = base.filter(Provider.category_id == category_id)
    if q:
        q_like = f"%{q.strip()}%"
        base = base.filter(or_(Provider.business_name.ilike(q_like), Provider.description.ilike(q_like)))

    total = base.count()
    offset = (page - 1) * limit
    providers = (
        base.order_by(Provider.average_rating.desc(), Provider.id)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "data": providers,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


def pending_providers(db: Session):
    # oldest application first
    return (
        db.query(Provider)
        .filter(Provider.status == ProviderStatus.PENDING)
        .order_by(Provider.created_at.asc(), Provider.id.asc())
        .all()
    )
