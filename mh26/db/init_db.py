# mh26/db/init_db.py
# importing every model registers it on Base.metadata
from mh26.db.base import Base, engine
from mh26.db.models.booking import Booking  # noqa: F401
from mh26.db.models.booking_event import BookingEvent  # noqa: F401
from mh26.db.models.category import Category  # noqa: F401
from mh26.db.models.notification import Notification  # noqa: F401
from mh26.db.models.provider import Provider  # noqa: F401
from mh26.db.models.report import Report  # noqa: F401
from mh26.db.models.review import Review  # noqa: F401
from mh26.db.models.service import Service  # noqa: F401
from mh26.db.models.transaction import Transaction  # noqa: F401
from mh26.db.models.user import User  # noqa: F401


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)
