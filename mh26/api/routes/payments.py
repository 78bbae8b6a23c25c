# mh26/api/routes/payments.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from mh26.db.base import get_db
from mh26.db.models.enums import UserRole
from mh26.db.models.user import User
from mh26.schemas.payment import PaymentCreate, RefundCreate, TransactionResponse
from mh26.services.bookings import BookingService
from mh26.services.ledger import LedgerService
from mh26.core.security import get_current_user, require_admin

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/bookings/{booking_id}/pay", response_model=TransactionResponse, status_code=201)
def pay_booking(
    booking_id: int,
    payment: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    booking = BookingService(db).get_booking_for(booking_id, current_user)
    if booking.customer_id != current_user.id and current_user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Only the customer can pay for a booking")
    return LedgerService(db).record_payment(booking_id, payment.amount, payment.method, payment.external_id)


@router.post("/bookings/{booking_id}/settle", response_model=TransactionResponse)
def settle_booking_payout(booking_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return LedgerService(db).settle_payout(booking_id)


@router.post("/bookings/{booking_id}/refund", response_model=TransactionResponse, status_code=201)
def refund_booking(
    booking_id: int,
    refund: RefundCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return LedgerService(db).refund(booking_id, refund.amount, refund.external_id, actor_id=admin.id)


@router.get("/bookings/{booking_id}", response_model=list[TransactionResponse])
def booking_ledger(booking_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    BookingService(db).get_booking_for(booking_id, current_user)
    return LedgerService(db).ledger_for_booking(booking_id)
