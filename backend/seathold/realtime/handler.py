"""
Per-message dispatch for seat-map channels.

Failures never close the connection: they come back to the sender as an
`error` event and the channel stays usable.
"""

from typing import Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seathold.core.exceptions import SeatHoldError
from seathold.core.logging import get_logger
from seathold.realtime.registry import Channel
from seathold.schemas.channel import CompleteCommand, HoldCommand, JoinCommand, ReleaseCommand, parse_command
from seathold.schemas.events import ErrorEvent
from seathold.services.seat_service import SeatCommandProcessor

logger = get_logger(__name__)


async def handle_channel_message(
    processor: SeatCommandProcessor,
    session_factory: async_sessionmaker[AsyncSession],
    channel: Channel,
    raw: Union[str, bytes],
) -> None:
    registry = processor.registry
    try:
        command = parse_command(raw)
        # A joined channel may omit sessionId on later commands
        session_id = command.session_id or channel.session_id

        async with session_factory() as db:
            if isinstance(command, JoinCommand):
                await processor.join(db, channel, session_id)
            elif isinstance(command, HoldCommand):
                await processor.hold(db, session_id, command.seat_id)
            elif isinstance(command, ReleaseCommand):
                await processor.release(db, session_id, command.seat_id)
            elif isinstance(command, CompleteCommand):
                await processor.complete(db, session_id, command.seat_ids)

    except SeatHoldError as e:
        logger.info("channel_command_rejected", channel_id=channel.id, code=e.code, message=e.message)
        await registry.send(channel, ErrorEvent(message=e.message, code=e.code))
    except Exception:
        logger.exception("channel_command_failed", channel_id=channel.id)
        await registry.send(channel, ErrorEvent(message="Internal server error", code="internal_error"))
