# mh26/api/routes/notifications.py
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from mh26.db.base import get_db
from mh26.db.models.notification import Notification
from mh26.db.models.user import User
from mh26.schemas.notification import NotificationResponse
from mh26.core.security import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _own_notification(db: Session, notification_id: int, user: User) -> Notification:
    row = db.query(Notification).filter(
        Notification.id == notification_id, Notification.user_id == user.id
    ).first()
    if not row:
        raise HTTPException(status_code=404, detail="Notification not found")
    return row


@router.get("/", response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    q = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        q = q.filter(Notification.read == False)  # noqa: E712
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


@router.post("/read-all")
def mark_all_read(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    count = db.query(Notification).filter(
        Notification.user_id == current_user.id, Notification.read == False  # noqa: E712
    ).update({Notification.read: True}, synchronize_session=False)
    db.commit()
    return {"ok": True, "updated": count}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(notification_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    row = _own_notification(db, notification_id, current_user)
    row.read = True
    db.commit()
    db.refresh(row)
    return row


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(notification_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    row = _own_notification(db, notification_id, current_user)
    db.delete(row)
    db.commit()
    return
