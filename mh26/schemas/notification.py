# mh26/schemas/notification.py
from pydantic import BaseModel
from datetime import datetime


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    body: str
    payload: dict
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True
