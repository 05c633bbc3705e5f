"""Domain errors raised by the booking core.

Every failure the core can report is one of these classes, grouped by how a
caller is expected to react to it. The HTTP layer maps them to status codes in
``consult_booking.exceptions``.
"""
from typing import Optional


class BookingError(Exception):
    status_code = 400

    def __init__(self, detail: str, appointment_id: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.appointment_id = appointment_id


# User-input errors: reported, never retried, no state change.
class UserInputError(BookingError):
    pass


class InvalidSlot(UserInputError):
    status_code = 400


class CancellationWindowClosed(UserInputError):
    status_code = 400


class Forbidden(UserInputError):
    status_code = 403


class NotFound(UserInputError):
    status_code = 404


class AuthError(UserInputError):
    status_code = 401


# Contention errors: the expected outcome of a lost race.
class ContentionError(BookingError):
    status_code = 409


class SlotUnavailable(ContentionError):
    pass


class SlotTaken(ContentionError):
    pass


class Conflict(ContentionError):
    def __init__(self, detail: str, appointment_id: Optional[int] = None, current_state: Optional[str] = None):
        super().__init__(detail, appointment_id)
        self.current_state = current_state


# Trust errors: rejected without state change, counted for tamper alerts.
class TrustError(BookingError):
    status_code = 400


class SignatureInvalid(TrustError):
    status_code = 401


class AmountMismatch(TrustError):
    status_code = 422


# Storage and transport faults.
class StorageError(BookingError):
    status_code = 503


class GatewayError(BookingError):
    status_code = 502


class GatewayTimeout(GatewayError):
    status_code = 504

