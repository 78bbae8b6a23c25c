# mh26/api/routes/providers.py
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from sqlalchemy.orm import Session

from mh26.db.base import get_db
from mh26.db.models.enums import ProviderStatus, UserRole
from mh26.db.models.provider import Provider
from mh26.db.models.user import User
from mh26.schemas.provider import EarningsSummary, ProviderApply, ProviderListResponse, ProviderResponse
from mh26.services.directory import search_providers
from mh26.services.ledger import LedgerService
from mh26.core.security import get_current_user

router = APIRouter(prefix="/providers", tags=["providers"])


# Public directory of approved providers
@router.get("/", response_model=ProviderListResponse)
def list_providers(
    city: Optional[str] = Query(None),
    category_id: Optional[int] = Query(None),
    q: Optional[str] = Query(None, description="Search business name and description"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return search_providers(db, city=city, category_id=category_id, q=q, page=page, limit=limit)


@router.post("/apply", response_model=ProviderResponse, status_code=201)
def apply_as_provider(
    payload: ProviderApply,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if current_user.role == UserRole.ADMIN:
        raise HTTPException(status_code=400, detail="Admins cannot apply as providers")
    if db.query(Provider).filter(Provider.user_id == current_user.id).first():
        raise HTTPException(status_code=400, detail="You have already applied")

    provider = Provider(
        user_id=current_user.id,
        business_name=payload.business_name,
        description=payload.description,
        city=payload.city,
        category_id=payload.category_id,
        status=ProviderStatus.PENDING,
    )
    db.add(provider)
    db.commit()
    db.refresh(provider)
    return provider


@router.get("/me/earnings", response_model=EarningsSummary)
def my_earnings(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    provider = db.query(Provider).filter(Provider.user_id == current_user.id).first()
    if not provider:
        raise HTTPException(status_code=403, detail="Providers only")
    return LedgerService(db).earnings_summary(provider.id)


@router.get("/{provider_id}", response_model=ProviderResponse)
def get_provider(provider_id: int, db: Session = Depends(get_db)):
    provider = db.get(Provider, provider_id)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider
