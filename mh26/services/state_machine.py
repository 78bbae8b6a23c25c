"""Booking status transitions.

Every status change in the system goes through ``next_status``; the
services layer adds the actor checks, time rules and financial side
effects on top of it.

    PENDING -> CONFIRMED -> IN_PROGRESS -> COMPLETED
    PENDING | CONFIRMED -> CANCELLED
    PENDING | CONFIRMED | IN_PROGRESS -> DISPUTED
    DISPUTED -> COMPLETED | CANCELLED   (admin resolution only)
"""
from enum import Enum
from typing import Dict, Tuple

from mh26.core.exceptions import InvalidTransition, TerminalStateViolation
from mh26.db.models.enums import BookingStatus


class BookingAction(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    START = "start"
    COMPLETE = "complete"
    DISPUTE = "dispute"
    RESOLVE_COMPLETE = "resolve_complete"
    RESOLVE_CANCEL = "resolve_cancel"


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

TRANSITIONS: Dict[Tuple[BookingStatus, BookingAction], BookingStatus] = {
    (BookingStatus.PENDING, BookingAction.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.START): BookingStatus.IN_PROGRESS,
    (BookingStatus.IN_PROGRESS, BookingAction.COMPLETE): BookingStatus.COMPLETED,
    (BookingStatus.PENDING, BookingAction.DISPUTE): BookingStatus.DISPUTED,
    (BookingStatus.CONFIRMED, BookingAction.DISPUTE): BookingStatus.DISPUTED,
    (BookingStatus.IN_PROGRESS, BookingAction.DISPUTE): BookingStatus.DISPUTED,
    (BookingStatus.DISPUTED, BookingAction.RESOLVE_COMPLETE): BookingStatus.COMPLETED,
    (BookingStatus.DISPUTED, BookingAction.RESOLVE_CANCEL): BookingStatus.CANCELLED,
}

ADMIN_ONLY_ACTIONS = frozenset({BookingAction.RESOLVE_COMPLETE, BookingAction.RESOLVE_CANCEL})


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def next_status(current: BookingStatus, action: BookingAction) -> BookingStatus:
    if is_terminal(current):
        raise TerminalStateViolation(f"Cannot {action.value} a {current.value.lower()} booking")
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        if current == BookingStatus.DISPUTED:
            raise InvalidTransition("Booking is disputed and awaits admin resolution") from None
        raise InvalidTransition(f"Cannot {action.value} a booking that is {current.value}") from None


def allowed_actions(current: BookingStatus):
    return sorted(a.value for (s, a) in TRANSITIONS if s == current)
