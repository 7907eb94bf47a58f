"""
Hold ledger: conditional state transitions on seat rows.

CONCURRENCY STRATEGY: Conditional UPDATE (compare-and-set)
==========================================================

Problem:
  Two sessions click the same seat at the same moment. Both read
  status='available', both write status='held'. The last writer wins and
  the first session believes it holds a seat it does not.

Solution:
  Every transition is a single UPDATE whose WHERE clause *is* the
  precondition:

    UPDATE seats SET status='held', held_by=:sid, ...
    WHERE id = :seat_id
      AND (status = 'available' OR (status = 'held' AND held_by = :sid))

  The database serializes writers on the row, so exactly one of the two
  racing statements matches; the loser sees rowcount == 0. Only then do we
  re-read the row to explain *why* it failed (missing, someone else's hold,
  or the session's hold cap).

  The same pattern covers release (WHERE held_by = :sid), completion
  (WHERE every requested seat is held by :sid, all-or-nothing) and the
  expiry sweep (WHERE status = 'held' AND held_at < :cutoff).

These functions only flush statements; the caller owns the transaction and
commits before broadcasting anything.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from seathold.core.exceptions import (
    HoldForbiddenError,
    HoldLimitExceededError,
    InvalidHoldError,
    SeatConflictError,
    SeatNotFoundError,
    SeatValidationError,
)
from seathold.core.logging import get_logger
from seathold.models.seat import Seat, SeatStatus

logger = get_logger(__name__)

HELD = SeatStatus.HELD.value
AVAILABLE = SeatStatus.AVAILABLE.value
SOLD = SeatStatus.SOLD.value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def unique_ids(seat_ids: Sequence[str]) -> list[str]:
    """Drop duplicates, keep request order."""
    return list(dict.fromkeys(seat_ids))


async def get_seat(db: AsyncSession, seat_id: str) -> Optional[Seat]:
    """Fresh read of one seat, bypassing whatever the session has cached."""
    return await db.get(Seat, seat_id, populate_existing=True)


async def get_seats(db: AsyncSession, seat_ids: Sequence[str]) -> list[Seat]:
    result = await db.execute(
        select(Seat)
        .where(Seat.id.in_(list(seat_ids)))
        .order_by(Seat.section_id.asc(), Seat.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def lock_session(db: AsyncSession, session_id: str) -> None:
    """
    Serialize one session's holds across processes until the transaction ends.

    On PostgreSQL READ COMMITTED the cap subquery in `try_hold` reads its own
    statement snapshot, and holds on different rows never block each other,
    so two processes could both count 7 and both succeed. A transaction-scoped
    advisory lock keyed on the session closes that gap. SQLite serializes all
    writers already, so there it is a no-op.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(select(func.pg_advisory_xact_lock(func.hashtext(session_id))))


async def try_hold(db: AsyncSession, seat_id: str, session_id: str, max_held: int) -> Seat:
    """
    Place (or refresh) a hold on one seat.

    The cap predicate rides along in the same UPDATE: the seat is only taken
    if the session holds fewer than `max_held` *other* seats, so a re-hold of
    a seat the session already owns never trips the cap.
    """
    now = utcnow()
    held_elsewhere = (
        select(func.count())
        .select_from(Seat)
        .where(Seat.held_by == session_id, Seat.status == HELD, Seat.id != seat_id)
        .scalar_subquery()
    )

    result = await db.execute(
        update(Seat)
        .where(
            Seat.id == seat_id,
            or_(
                Seat.status == AVAILABLE,
                and_(Seat.status == HELD, Seat.held_by == session_id),
            ),
            held_elsewhere < max_held,
        )
        .values(status=HELD, held_by=session_id, held_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    seat = await get_seat(db, seat_id)
    if result.rowcount == 1:
        logger.debug("seat_hold_applied", seat_id=seat_id, session_id=session_id)
        return seat

    if seat is None:
        raise SeatNotFoundError(seat_id)

    if seat.status == AVAILABLE or (seat.status == HELD and seat.held_by == session_id):
        # Precondition on the seat itself was fine; the cap blocked it
        raise HoldLimitExceededError(max_held)

    logger.info(
        "seat_hold_conflict",
        seat_id=seat_id,
        session_id=session_id,
        status=seat.status,
        held_by=seat.held_by,
    )
    raise SeatConflictError(f"Seat {seat_id} is not available")


async def release(db: AsyncSession, seat_id: str, session_id: str) -> Seat:
    """Return a seat to available. Only the holding session may do this."""
    now = utcnow()
    result = await db.execute(
        update(Seat)
        .where(Seat.id == seat_id, Seat.status == HELD, Seat.held_by == session_id)
        .values(status=AVAILABLE, held_by=None, held_at=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    seat = await get_seat(db, seat_id)
    if result.rowcount == 1:
        return seat

    if seat is None:
        raise SeatNotFoundError(seat_id)

    raise HoldForbiddenError(f"Seat {seat_id} is not held by this session")


async def complete(db: AsyncSession, seat_ids: Sequence[str], session_id: str) -> list[Seat]:
    """
    Sell every listed seat, or none of them.

    Rows are locked in id order first (no-op on SQLite, which serializes
    writers anyway), then a single UPDATE whose count subquery only lets it
    match when every requested seat is still held by the session. If fewer
    rows than requested were sold the caller must roll back.
    """
    ids = unique_ids(seat_ids)
    if not ids:
        raise SeatValidationError("Seat IDs array is required.")

    locked = await db.execute(
        select(Seat)
        .where(Seat.id.in_(ids))
        .order_by(Seat.id.asc())
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    found = {seat.id: seat for seat in locked.scalars().all()}
    offending = [
        seat_id
        for seat_id in ids
        if seat_id not in found
        or found[seat_id].status != HELD
        or found[seat_id].held_by != session_id
    ]
    if offending:
        raise InvalidHoldError(offending)

    now = utcnow()
    held_by_session = (
        select(func.count())
        .select_from(Seat)
        .where(Seat.id.in_(ids), Seat.status == HELD, Seat.held_by == session_id)
        .scalar_subquery()
    )

    result = await db.execute(
        update(Seat)
        .where(
            Seat.id.in_(ids),
            Seat.status == HELD,
            Seat.held_by == session_id,
            held_by_session == len(ids),
        )
        .values(status=SOLD, held_by=None, held_at=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != len(ids):
        logger.warning(
            "seat_complete_partial",
            session_id=session_id,
            requested=len(ids),
            updated=result.rowcount,
        )
        raise InvalidHoldError(ids)

    return await get_seats(db, ids)


async def set_status(
    db: AsyncSession,
    seat_ids: Sequence[str],
    new_status: str,
    held_by: Optional[str] = None,
) -> list[Seat]:
    """
    Administrative override, outside the normal state machine.

    Overwrites status unconditionally but never breaks the holder invariant:
    moving to anything other than `held` clears the hold, and moving to
    `held` requires naming the holder.
    """
    if new_status not in SeatStatus.values():
        raise SeatValidationError(
            f"Invalid status value. Allowed: {', '.join(SeatStatus.values())}"
        )
    if new_status == HELD and not held_by:
        raise SeatValidationError("heldBy is required when setting status to held.")

    ids = unique_ids(seat_ids)
    now = utcnow()
    if new_status == HELD:
        values = {"status": HELD, "held_by": held_by, "held_at": now, "updated_at": now}
    else:
        values = {"status": new_status, "held_by": None, "held_at": None, "updated_at": now}

    await db.execute(
        update(Seat)
        .where(Seat.id.in_(ids))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return await get_seats(db, ids)


async def list_seats(db: AsyncSession, page: int, limit: int) -> tuple[list[Seat], int]:
    """Page through every seat ordered by (section_id, id)."""
    if page < 1:
        raise SeatValidationError("page must be >= 1")
    if limit < 1:
        raise SeatValidationError("limit must be > 0")

    total = (await db.execute(select(func.count()).select_from(Seat))).scalar()

    result = await db.execute(
        select(Seat)
        .order_by(Seat.section_id.asc(), Seat.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all()), total


async def release_expired(db: AsyncSession, ttl: timedelta) -> int:
    """Free every hold placed more than `ttl` ago. Returns the number released."""
    now = utcnow()
    cutoff = now - ttl
    result = await db.execute(
        update(Seat)
        .where(Seat.status == HELD, Seat.held_at < cutoff)
        .values(status=AVAILABLE, held_by=None, held_at=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def snapshot(db: AsyncSession) -> list[Seat]:
    """Every seat that is not available: what a newly joined viewer must reconcile."""
    result = await db.execute(
        select(Seat)
        .where(Seat.status != AVAILABLE)
        .order_by(Seat.section_id.asc(), Seat.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
