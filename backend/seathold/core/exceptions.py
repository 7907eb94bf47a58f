"""
Domain error taxonomy for seat operations.

Every error carries the HTTP status it maps to and a short machine code.
The HTTP layer turns them into `{success: false, message}` envelopes, the
WebSocket layer into `error` events. Nothing here knows about transports.
"""

from typing import Optional


class SeatHoldError(Exception):
    status_code: int = 500
    code: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SeatValidationError(SeatHoldError):
    """Missing or malformed input. Raised before the ledger is touched."""

    status_code = 400
    code = "validation_error"


class SeatConflictError(SeatHoldError):
    """Seat is held by another session, or already sold/reserved."""

    status_code = 409
    code = "conflict"


class HoldForbiddenError(SeatHoldError):
    """Caller tried to act on a hold it does not own."""

    status_code = 403
    code = "forbidden"


class HoldLimitExceededError(SeatHoldError):
    status_code = 409
    code = "cap_exceeded"

    def __init__(self, limit: int):
        super().__init__(f"Maximum of {limit} seats can be held per session.")
        self.limit = limit


class InvalidHoldError(SeatHoldError):
    """Completion rejected because some seats are not held by the session."""

    status_code = 400
    code = "invalid_hold"

    def __init__(self, seat_ids: list[str], message: Optional[str] = None):
        super().__init__(
            message or "Some seats are not held by this session or already booked: "
            + ", ".join(seat_ids)
        )
        self.seat_ids = seat_ids


class SeatNotFoundError(SeatHoldError):
    status_code = 404
    code = "not_found"

    def __init__(self, seat_id: str):
        super().__init__(f"Seat {seat_id} not found")
        self.seat_id = seat_id


class StoreError(SeatHoldError):
    """Underlying persistence failure. Not retried at this layer."""

    status_code = 500
    code = "store_error"
