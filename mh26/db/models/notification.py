# mh26/db/models/notification.py
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from mh26.db.base import Base


class Notification(Base):
    """
    Addressed to a user; no foreign key to the booking that spawned it,
    so it can be read or deleted on its own schedule.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    type = Column(String(40), nullable=False)
    title = Column(String, nullable=False)
    body = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
