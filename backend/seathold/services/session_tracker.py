"""
Session tracker: attribution and hold-cap counting for opaque session tokens.

Sessions have no table of their own. A session exists as far as the ledger
is concerned once some seat row carries it in `held_by`.
"""

import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from seathold.models.seat import Seat, SeatStatus
from seathold.core.logging import get_logger

logger = get_logger(__name__)


def create_session() -> str:
    session_id = str(uuid.uuid4())
    logger.info("session_created", session_id=session_id)
    return session_id


async def count_held(db: AsyncSession, session_id: str) -> int:
    """Number of seats currently held by the session. Uses ix_seats_held_by_status."""
    result = await db.execute(
        select(func.count())
        .select_from(Seat)
        .where(Seat.held_by == session_id, Seat.status == SeatStatus.HELD.value)
    )
    return result.scalar() or 0
