"""Reports against a booking and their admin resolution.

Filing a report moves the booking to DISPUTED. Only an admin can move it
on, to COMPLETED or CANCELLED, and the resolution is kept on the report
as well as in the booking's event log.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from mh26.core.exceptions import NotFound, PermissionDenied, ValidationFailed
from mh26.db.base import unit_of_work
from mh26.db.models.enums import ReportStatus, UserRole
from mh26.db.models.report import Report
from mh26.db.models.user import User
from mh26.services.base import lock_booking, utcnow
from mh26.services.bookings import BookingService
from mh26.services.state_machine import BookingAction

logger = logging.getLogger(__name__)

RESOLUTIONS = {
    "complete": BookingAction.RESOLVE_COMPLETE,
    "cancel": BookingAction.RESOLVE_CANCEL,
}


class DisputeService:
    def __init__(self, db: Session, bookings: Optional[BookingService] = None):
        self.db = db
        self.bookings = bookings or BookingService(db)

    def open_report(
        self,
        booking_id: int,
        reporter_id: int,
        reason: str,
        details: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Report:
        if not reason or not reason.strip():
            raise ValidationFailed("A reason is required")
        now = now or utcnow()

        with unit_of_work(self.db):
            booking = lock_booking(self.db, booking_id)
            if reporter_id not in (booking.customer_id, booking.provider.user_id):
                raise PermissionDenied("Only the customer or provider of a booking can report it")
            if self.db.query(Report).filter(Report.booking_id == booking_id).first():
                raise ValidationFailed("You have already reported this booking")

            report = Report(
                booking_id=booking.id,
                reporter_id=reporter_id,
                reason=reason.strip(),
                details=details,
                status=ReportStatus.OPEN,
                created_at=now,
            )
            self.db.add(report)
            self.db.flush()
            rows = self.bookings.apply(
                booking, BookingAction.DISPUTE, reporter_id, {"report_id": report.id, "note": reason}, now
            )

        logger.info("Report %s opened on booking %s by user %s", report.id, booking_id, reporter_id)
        self.bookings.dispatcher.deliver(rows)
        return report

    def resolve_report(
        self,
        report_id: int,
        admin_id: int,
        outcome: str,
        admin_notes: Optional[str] = None,
        actual_price=None,
        now: Optional[datetime] = None,
    ) -> Report:
        if outcome not in RESOLUTIONS:
            raise ValidationFailed("Outcome must be 'complete' or 'cancel'")
        admin = self.db.get(User, admin_id)
        if not admin or admin.role != UserRole.ADMIN:
            raise PermissionDenied("Admin only")
        now = now or utcnow()

        with unit_of_work(self.db):
            report = self.db.get(Report, report_id)
            if not report:
                raise NotFound("Report not found")
            if report.status != ReportStatus.OPEN:
                raise ValidationFailed("Report is already resolved")

            booking = lock_booking(self.db, report.booking_id)
            payload = {"note": admin_notes, "reason": admin_notes, "actual_price": actual_price}
            rows = self.bookings.apply(booking, RESOLUTIONS[outcome], admin_id, payload, now)

            report.status = ReportStatus.RESOLVED
            report.resolution = outcome
            report.admin_notes = admin_notes
            report.resolved_at = now

        logger.info("Report %s resolved by admin %s: %s", report_id, admin_id, outcome)
        self.bookings.dispatcher.deliver(rows)
        return report

    def list_reports(self, status: Optional[str] = None, page: int = 1, per_page: int = 50):
        q = self.db.query(Report)
        if status:
            try:
                q = q.filter(Report.status == ReportStatus(status))
            except ValueError:
                raise ValidationFailed("status must be OPEN or RESOLVED") from None
        offset = (page - 1) * per_page
        return q.order_by(Report.created_at.desc()).offset(offset).limit(per_page).all()
