"""
Exception handlers: every error leaving the HTTP layer becomes
`{"success": false, "message": ...}`.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from seathold.core.exceptions import SeatHoldError
from seathold.core.logging import get_logger

logger = get_logger(__name__)


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


async def seat_error_handler(request: Request, exc: SeatHoldError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("seat_error", code=exc.code, message=exc.message, exc_info=exc)
    else:
        logger.info("seat_request_rejected", code=exc.code, message=exc.message)
    return _envelope(exc.status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"Invalid {location or 'request'}: {first.get('msg', 'malformed input')}"
    logger.info("request_validation_failed", errors=len(errors), message=message)
    return _envelope(status.HTTP_400_BAD_REQUEST, message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", error=str(exc), exc_info=exc)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


EXCEPTION_HANDLERS = {
    SeatHoldError: seat_error_handler,
    RequestValidationError: validation_error_handler,
    Exception: unhandled_error_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
