# mh26/api/routes/admin.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from mh26.db.base import get_db
from mh26.db.models.enums import ProviderStatus, UserRole
from mh26.db.models.provider import Provider
from mh26.db.models.user import User
from mh26.schemas.provider import ProviderResponse, ProviderStatusUpdate, ReconcileResponse
from mh26.schemas.analytics import AnalyticsResponse
from mh26.schemas.report import ReportResolve, ReportResponse
from mh26.services.analytics import platform_analytics
from mh26.services.directory import pending_providers
from mh26.services.disputes import DisputeService
from mh26.services.ledger import LedgerService
from mh26.core.security import require_admin

router = APIRouter(prefix="/admin", tags=["admin"])


# -------------------------
# 1. Provider applications
# -------------------------
@router.get("/providers/pending", response_model=List[ProviderResponse])
def list_pending_providers(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return pending_providers(db)


@router.put("/providers/{provider_id}/status", response_model=ProviderResponse)
def set_provider_status(
    provider_id: int,
    payload: ProviderStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    provider = db.get(Provider, provider_id)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")

    provider.status = payload.status
    if payload.status == ProviderStatus.APPROVED and provider.user.role == UserRole.CUSTOMER:
        provider.user.role = UserRole.PROVIDER
    db.commit()
    db.refresh(provider)
    return provider


# -------------------------
# 2. Reports / disputes
# -------------------------
@router.get("/reports", response_model=List[ReportResponse])
def list_reports(
    status: Optional[str] = Query(None, description="OPEN/RESOLVED"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return DisputeService(db).list_reports(status, page, per_page)


@router.post("/reports/{report_id}/resolve", response_model=ReportResponse)
def resolve_report(
    report_id: int,
    payload: ReportResolve,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return DisputeService(db).resolve_report(
        report_id, admin.id, payload.outcome, payload.admin_notes, payload.actual_price
    )


# -------------------------
# 3. Earnings maintenance
# -------------------------
@router.post("/earnings/reconcile/{provider_id}", response_model=ReconcileResponse)
def reconcile_earnings(provider_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return LedgerService(db).reconcile_provider_earnings(provider_id)


@router.post("/earnings/reset-month")
def reset_month(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    count = LedgerService(db).reset_monthly_earnings()
    return {"ok": True, "providers": count}


# -------------------------
# 4. Analytics
# -------------------------
@router.get("/analytics", response_model=AnalyticsResponse)
def analytics(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return platform_analytics(db)
