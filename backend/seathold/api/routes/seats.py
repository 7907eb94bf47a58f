"""
Seat endpoints: listing, session creation, hold/release/complete, admin
status override and on-demand cleanup.

The session token comes from the `x-session-id` header, falling back to
`sessionId` in the body.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from seathold.api.deps import get_processor, get_session_header
from seathold.core.config import get_settings
from seathold.db.session import get_db
from seathold.schemas.seat import (
    CleanupResponse,
    SeatActionResponse,
    SeatCompleteRequest,
    SeatCompleteResponse,
    SeatHoldRequest,
    SeatListResponse,
    SeatResponse,
    SeatStatusUpdate,
    SeatStatusUpdateResponse,
    SessionCreatedResponse,
)
from seathold.services.seat_service import SeatCommandProcessor

settings = get_settings()
router = APIRouter(prefix="/seats", tags=["Seats"])


@router.get("", response_model=SeatListResponse)
async def list_seats_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1),
    db: AsyncSession = Depends(get_db),
    processor: SeatCommandProcessor = Depends(get_processor),
):
    """
    Paginated seat map ordered by section, then seat id.
    Cached in Redis until the next seat event.
    """
    return await processor.list_seats(db, page, limit)


@router.patch("/status", response_model=SeatStatusUpdateResponse)
async def update_seat_status(
    body: SeatStatusUpdate,
    db: AsyncSession = Depends(get_db),
    processor: SeatCommandProcessor = Depends(get_processor),
):
    """
    Administrative bulk override. Setting `held` requires `heldBy`; any other
    status clears the current hold.
    """
    seats = await processor.admin_set_status(db, body.seats, body.status, held_by=body.held_by)
    return SeatStatusUpdateResponse(updated=len(seats), seats=[seat.id for seat in seats])


@router.post("/session", response_model=SessionCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_session_endpoint(processor: SeatCommandProcessor = Depends(get_processor)):
    return SessionCreatedResponse(session_id=processor.create_session())


@router.post("/hold", response_model=SeatActionResponse)
async def hold_seat(
    body: SeatHoldRequest,
    header_session: Optional[str] = Depends(get_session_header),
    db: AsyncSession = Depends(get_db),
    processor: SeatCommandProcessor = Depends(get_processor),
):
    seat = await processor.hold(db, header_session or body.session_id, body.seat_id)
    return SeatActionResponse(seat=SeatResponse.model_validate(seat), message="Seat held successfully")


@router.post("/release", response_model=SeatActionResponse)
async def release_seat(
    body: SeatHoldRequest,
    header_session: Optional[str] = Depends(get_session_header),
    db: AsyncSession = Depends(get_db),
    processor: SeatCommandProcessor = Depends(get_processor),
):
    seat = await processor.release(db, header_session or body.session_id, body.seat_id)
    return SeatActionResponse(seat=SeatResponse.model_validate(seat), message="Seat released successfully")


@router.post("/complete", response_model=SeatCompleteResponse)
async def complete_reservation(
    body: SeatCompleteRequest,
    header_session: Optional[str] = Depends(get_session_header),
    db: AsyncSession = Depends(get_db),
    processor: SeatCommandProcessor = Depends(get_processor),
):
    """Sell every listed seat if, and only if, all of them are held by the session."""
    seats = await processor.complete(db, header_session or body.session_id, body.seat_ids)
    return SeatCompleteResponse(
        reserved_seats=[SeatResponse.model_validate(seat) for seat in seats],
        count=len(seats),
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_expired(processor: SeatCommandProcessor = Depends(get_processor)):
    """Release every hold older than the configured TTL."""
    result = await processor.cleanup()
    return CleanupResponse(released=result.released_count)
