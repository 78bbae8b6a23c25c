from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional

from mh26.db.base import get_db
from mh26.db.models.booking import Booking
from mh26.db.models.booking_event import BookingEvent
from mh26.db.models.enums import BookingStatus
from mh26.db.models.provider import Provider
from mh26.db.models.user import User
from mh26.schemas.booking import (
    BookingCreate,
    BookingEventResponse,
    BookingResponse,
    CancelRequest,
    CompleteRequest,
    InvoiceResponse,
)
from mh26.services.bookings import BookingService
from mh26.services.state_machine import BookingAction
from mh26.core.security import get_current_user

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _filter_status(q, status: Optional[BookingStatus]):
    if status is not None:
        q = q.filter(Booking.status == status)
    return q


# Customer creates booking

@router.post("/customer", response_model=BookingResponse, status_code=201)
def create_booking(
    booking: BookingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return BookingService(db).create_booking(
        customer_id=current_user.id,
        provider_id=booking.provider_id,
        service_id=booking.service_id,
        scheduled_at=booking.scheduled_at,
        address=booking.address,
        requirements=booking.requirements,
    )


# Customer views their bookings

@router.get("/customer/me", response_model=list[BookingResponse])
def customer_my_bookings(
    status: Optional[BookingStatus] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    q = _filter_status(db.query(Booking).filter(Booking.customer_id == current_user.id), status)
    offset = (page - 1) * per_page
    return q.order_by(Booking.created_at.desc()).offset(offset).limit(per_page).all()


# Provider views their bookings

@router.get("/provider/me", response_model=list[BookingResponse])
def provider_my_bookings(
    status: Optional[BookingStatus] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    provider = db.query(Provider).filter(Provider.user_id == current_user.id).first()
    if not provider:
        raise HTTPException(status_code=403, detail="Only providers can view this")

    q = _filter_status(db.query(Booking).filter(Booking.provider_id == provider.id), status)
    offset = (page - 1) * per_page
    return q.order_by(Booking.created_at.desc()).offset(offset).limit(per_page).all()


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return BookingService(db).get_booking_for(booking_id, current_user)


@router.get("/{booking_id}/events", response_model=list[BookingEventResponse])
def booking_events(booking_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    BookingService(db).get_booking_for(booking_id, current_user)
    return db.query(BookingEvent).filter(BookingEvent.booking_id == booking_id).order_by(BookingEvent.id).all()


@router.get("/{booking_id}/invoice", response_model=InvoiceResponse)
def booking_invoice(booking_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return BookingService(db).invoice(booking_id, current_user)


# Provider accepts booking

@router.post("/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(booking_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return BookingService(db).transition_booking(booking_id, BookingAction.CONFIRM, current_user.id)


# Either party cancels booking

@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    body: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    payload = {"reason": body.reason} if body else {}
    return BookingService(db).transition_booking(booking_id, BookingAction.CANCEL, current_user.id, payload)


# Provider starts the job

@router.post("/{booking_id}/start", response_model=BookingResponse)
def start_booking(booking_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return BookingService(db).transition_booking(booking_id, BookingAction.START, current_user.id)


# Provider completes booking

@router.post("/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(
    booking_id: int,
    body: Optional[CompleteRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    payload = {"actual_price": body.actual_price} if body else {}
    return BookingService(db).transition_booking(booking_id, BookingAction.COMPLETE, current_user.id, payload)
