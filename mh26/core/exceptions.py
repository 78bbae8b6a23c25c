"""Errors raised by the booking, ledger and review services.

Every error is scoped to the single request that raised it. The API layer
turns them into JSON responses using ``status_code``; only
``ConcurrencyConflict`` is marked retryable.
"""


class BookingError(Exception):
    status_code = 400
    retryable = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidTransition(BookingError):
    status_code = 409


class TerminalStateViolation(BookingError):
    status_code = 409


class CancellationWindowExpired(BookingError):
    status_code = 409


class AmountMismatch(BookingError):
    status_code = 422


class DuplicateReview(BookingError):
    status_code = 409


class ConcurrencyConflict(BookingError):
    status_code = 409
    retryable = True


class NotFound(BookingError):
    status_code = 404


class PermissionDenied(BookingError):
    status_code = 403


class ValidationFailed(BookingError):
    status_code = 400
