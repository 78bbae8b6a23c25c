# mh26/api/routes/reports.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mh26.db.base import get_db
from mh26.db.models.user import User
from mh26.schemas.report import ReportCreate, ReportResponse
from mh26.services.disputes import DisputeService
from mh26.core.security import get_current_user

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("/", response_model=ReportResponse, status_code=201)
def create_report(report_in: ReportCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return DisputeService(db).open_report(report_in.booking_id, current_user.id, report_in.reason, report_in.details)
