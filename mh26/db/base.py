import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from mh26.core.config import DATABASE_URL, DB_ECHO
from mh26.core.exceptions import BookingError, ConcurrencyConflict

logger = logging.getLogger(__name__)


def build_engine(url: str = DATABASE_URL, echo: bool = DB_ECHO):
    connect_args = {}
    if url.startswith("sqlite"):
        # TestClient and uvicorn workers hand sessions across threads
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, pool_pre_ping=True, connect_args=connect_args)


engine = build_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session):
    """Commit everything done inside the block, or roll all of it back.

    Lock contention and stale row versions are reported as
    ``ConcurrencyConflict`` so callers can retry.
    """
    try:
        yield db
        db.commit()
    except (StaleDataError, OperationalError) as exc:
        db.rollback()
        logger.warning("Unit of work hit a concurrent update: %s", exc)
        raise ConcurrencyConflict("Booking was modified by another request, retry") from exc
    except BookingError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.error("Unit of work rolled back", exc_info=True)
        raise
