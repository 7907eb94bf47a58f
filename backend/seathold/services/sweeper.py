"""
Expiry sweeper: returns stale holds to available.

Runs on a fixed interval as a background task and can be triggered on
demand. It takes no lock of its own; `release_expired` is one conditional
UPDATE, so a sweep racing a hold, release or completion on the same seat
simply loses or wins at the row.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seathold.core.exceptions import StoreError
from seathold.core.logging import get_logger
from seathold.core.metrics import holds_expired, sweep_failures
from seathold.realtime.registry import ConnectionRegistry
from seathold.schemas.events import HoldsCleaned
from seathold.services import ledger

logger = get_logger(__name__)


@dataclass
class SweepResult:
    released_count: int


class ExpirySweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: ConnectionRegistry,
        ttl: timedelta,
        interval: float,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.ttl = ttl
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def sweep(self, notify: bool = True) -> SweepResult:
        """
        Release expired holds and tell every viewer.

        With notify=False (periodic ticks) the `cleanup` event is only sent
        when something was actually released.
        """
        async with self.session_factory() as db:
            try:
                released = await ledger.release_expired(db, self.ttl)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("sweep_store_error", error=str(e))
                raise StoreError("Cleanup failed") from e

        if released:
            holds_expired.inc(released)
            logger.info("holds_expired", released=released, ttl_seconds=self.ttl.total_seconds())

        if notify or released:
            await self.registry.broadcast(HoldsCleaned(released_count=released))

        return SweepResult(released_count=released)

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="seat-expiry-sweeper")
        logger.info("sweeper_started", interval_seconds=self.interval, ttl_seconds=self.ttl.total_seconds())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("sweeper_stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep(notify=False)
            except StoreError:
                # Already logged; next tick retries
                sweep_failures.inc()
            except Exception:
                sweep_failures.inc()
                logger.exception("sweep_failed")
