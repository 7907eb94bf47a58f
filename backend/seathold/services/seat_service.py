"""
Seat command processor: validation and orchestration for every seat command.

Each command follows the same shape:
  1. validate inputs (SeatValidationError before the store is touched)
  2. run the conditional ledger transition
  3. commit
  4. broadcast the change to every live channel, originator included

Broadcasting strictly after commit means a viewer that refetches on an event
always reads the committed state. The processor keeps no seat state of its
own; the only thing it holds is a per-session lock used to make the hold-cap
check and the hold itself one step for callers in this process.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Optional, Sequence
from weakref import WeakValueDictionary

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from seathold.core.exceptions import (
    HoldLimitExceededError,
    InvalidHoldError,
    SeatHoldError,
    SeatNotFoundError,
    SeatValidationError,
    StoreError,
)
from seathold.core.logging import get_logger
from seathold.core.metrics import record_seat_command, seat_command_latency
from seathold.models.seat import Seat, SeatStatus
from seathold.realtime.registry import Channel, ConnectionRegistry
from seathold.schemas.events import SeatHeld, SeatReleased, SeatsSold, SeatStatusChanged
from seathold.schemas.seat import SeatListResponse, SeatResponse
from seathold.services import ledger
from seathold.services.cache_service import get_cache_generation, get_cached_seats, set_cached_seats
from seathold.services.session_tracker import count_held, create_session
from seathold.services.sweeper import ExpirySweeper, SweepResult

logger = get_logger(__name__)


def _require(value: Optional[str], message: str) -> str:
    if not value or not value.strip():
        raise SeatValidationError(message)
    return value


class SeatCommandProcessor:
    def __init__(
        self,
        registry: ConnectionRegistry,
        sweeper: ExpirySweeper,
        max_holds_per_session: int = 8,
        max_page_size: int = 100,
    ):
        self.registry = registry
        self.sweeper = sweeper
        self.max_holds_per_session = max_holds_per_session
        self.max_page_size = max_page_size
        self._session_locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    def _session_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    @asynccontextmanager
    async def _command(self, name: str, db: Optional[AsyncSession] = None):
        """Roll back on failure, map store errors, record outcome and latency."""
        start = time.perf_counter()
        try:
            yield
        except SeatHoldError as e:
            if db is not None:
                await db.rollback()
            record_seat_command(name, e.code)
            raise
        except SQLAlchemyError as e:
            if db is not None:
                await db.rollback()
            record_seat_command(name, StoreError.code)
            logger.error("seat_command_store_error", command=name, error=str(e))
            raise StoreError(f"Failed to {name}: store unavailable") from e
        else:
            record_seat_command(name, "success")
        finally:
            seat_command_latency.labels(command=name).observe(time.perf_counter() - start)

    def create_session(self) -> str:
        return create_session()

    async def hold(self, db: AsyncSession, session_id: Optional[str], seat_id: Optional[str]) -> Seat:
        async with self._command("hold", db):
            seat_id = _require(seat_id, "seatId is required.")
            session_id = _require(session_id, "sessionId is required.")

            async with self._session_lock(session_id):
                await ledger.lock_session(db, session_id)
                held = await count_held(db, session_id)
                if held >= self.max_holds_per_session:
                    current = await ledger.get_seat(db, seat_id)
                    if current is None:
                        raise SeatNotFoundError(seat_id)
                    # Refreshing a seat the session already holds does not grow its count
                    if current.held_by != session_id:
                        raise HoldLimitExceededError(self.max_holds_per_session)

                seat = await ledger.try_hold(db, seat_id, session_id, self.max_holds_per_session)
                await db.commit()

        logger.info("seat_held", seat_id=seat_id, session_id=session_id)
        await self.registry.broadcast(SeatHeld(seat_id=seat_id, session_id=session_id))
        return seat

    async def release(self, db: AsyncSession, session_id: Optional[str], seat_id: Optional[str]) -> Seat:
        async with self._command("release", db):
            seat_id = _require(seat_id, "seatId is required.")
            session_id = _require(session_id, "sessionId is required.")

            seat = await ledger.release(db, seat_id, session_id)
            await db.commit()

        logger.info("seat_released", seat_id=seat_id, session_id=session_id)
        await self.registry.broadcast(SeatReleased(seat_id=seat_id, session_id=session_id))
        return seat

    async def complete(
        self,
        db: AsyncSession,
        session_id: Optional[str],
        seat_ids: Optional[Sequence[str]],
    ) -> list[Seat]:
        async with self._command("complete", db):
            session_id = _require(session_id, "Session ID is required.")
            if not seat_ids or not isinstance(seat_ids, (list, tuple)):
                raise SeatValidationError("Seat IDs array is required.")
            ids = ledger.unique_ids(seat_ids)

            # Early, friendlier rejection; ledger.complete re-checks under lock
            current = {seat.id: seat for seat in await ledger.get_seats(db, ids)}
            offending = [
                seat_id
                for seat_id in ids
                if seat_id not in current
                or current[seat_id].status != SeatStatus.HELD.value
                or current[seat_id].held_by != session_id
            ]
            if offending:
                logger.info("seat_complete_rejected", session_id=session_id, offending=offending)
                raise InvalidHoldError(offending)

            seats = await ledger.complete(db, ids, session_id)
            await db.commit()

        logger.info("seats_sold", seat_ids=ids, session_id=session_id)
        await self.registry.broadcast(SeatsSold(seat_ids=ids, session_id=session_id))
        return seats

    async def cleanup(self) -> SweepResult:
        async with self._command("cleanup"):
            return await self.sweeper.sweep(notify=True)

    async def admin_set_status(
        self,
        db: AsyncSession,
        seat_ids: Optional[Sequence[str]],
        status: Optional[str],
        held_by: Optional[str] = None,
    ) -> list[Seat]:
        async with self._command("set_status", db):
            if not seat_ids:
                raise SeatValidationError("Seats array is required.")
            status = _require(status, "Status is required.")

            seats = await ledger.set_status(db, seat_ids, status, held_by=held_by)
            await db.commit()

        updated_ids = [seat.id for seat in seats]
        logger.info("seat_status_overridden", seat_ids=updated_ids, status=status, held_by=held_by)
        if updated_ids:
            await self.registry.broadcast(SeatStatusChanged(seat_ids=updated_ids, new_status=status))
        return seats

    async def list_seats(self, db: AsyncSession, page: int, limit: int) -> SeatListResponse:
        """Paginated seat map, served from the listing cache when possible."""
        if limit > self.max_page_size:
            raise SeatValidationError(f"limit must be <= {self.max_page_size}")

        # Taken before the ledger read; see cache_service
        generation = await get_cache_generation()
        cached = await get_cached_seats(generation, page, limit)
        if cached:
            cached["cached"] = True
            return SeatListResponse.model_validate(cached)

        try:
            seats, total = await ledger.list_seats(db, page, limit)
        except SQLAlchemyError as e:
            logger.error("seat_list_store_error", error=str(e))
            raise StoreError("Failed to list seats") from e

        response = SeatListResponse(
            data=[SeatResponse.model_validate(seat) for seat in seats],
            total=total,
            page=page,
            limit=limit,
        )
        await set_cached_seats(generation, page, limit, response.model_dump(mode="json", by_alias=True))
        return response

    async def join(self, db: AsyncSession, channel: Channel, session_id: Optional[str]) -> None:
        session_id = _require(session_id, "sessionId is required.")
        try:
            seats = await ledger.snapshot(db)
        except SQLAlchemyError as e:
            logger.error("seat_snapshot_store_error", error=str(e))
            raise StoreError("Failed to load seat snapshot") from e
        await self.registry.join(channel, session_id, seats)
