"""
Realtime fan-out: the registry of live seat-map channels.

One registry exists per process. The application lifespan creates it, calls
`init()` before accepting connections and `shutdown()` on the way out, and
hands it to the command processor and the expiry sweeper.

Registry mutations never await in the middle, so on a single event loop they
cannot interleave and need no lock. Broadcasts do await (one send per
channel) and are serialized by `_broadcast_lock`, which keeps every channel's
view of events in the order `broadcast` was called.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

from starlette.websockets import WebSocketState

from seathold.core.logging import get_logger
from seathold.core.metrics import active_channels, channels_pruned, record_broadcast
from seathold.schemas.events import Connected, Joined, RealtimeEvent, SeatState

logger = get_logger(__name__)

BroadcastHook = Callable[[RealtimeEvent], Awaitable[None]]

GOING_AWAY = 1001


@dataclass
class Channel:
    """One live connection. `session_id` stays None until the client joins."""

    websocket: Any
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    session_id: Optional[str] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )


class ConnectionRegistry:
    def __init__(self, before_broadcast: Iterable[BroadcastHook] = ()):
        self._channels: dict[str, Channel] = {}
        self._hooks = list(before_broadcast)
        self._broadcast_lock = asyncio.Lock()
        self._running = False

    def init(self) -> None:
        self._running = True
        logger.info("realtime_registry_started")

    async def shutdown(self) -> None:
        """Stop accepting channels and close every live one."""
        self._running = False
        channels = list(self._channels.values())
        self._channels.clear()
        active_channels.set(0)

        for channel in channels:
            if not channel.is_open:
                continue
            try:
                await channel.websocket.close(code=GOING_AWAY)
            except Exception as e:
                logger.warning("channel_close_failed", channel_id=channel.id, error=str(e))

        logger.info("realtime_registry_stopped", closed=len(channels))

    @property
    def is_running(self) -> bool:
        return self._running

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel_id: str) -> bool:
        return channel_id in self._channels

    def get(self, channel_id: str) -> Optional[Channel]:
        return self._channels.get(channel_id)

    async def register(self, websocket: Any) -> Channel:
        """Accept the socket, add it to the live set and acknowledge with `connected`."""
        if not self._running:
            raise RuntimeError("Realtime registry is not running")

        await websocket.accept()
        channel = Channel(websocket=websocket)
        self._channels[channel.id] = channel
        active_channels.set(len(self._channels))
        logger.info("channel_connected", channel_id=channel.id, live=len(self._channels))

        await self.send(channel, Connected(client_id=channel.id))
        return channel

    def unregister(self, channel_id: str) -> None:
        channel = self._channels.pop(channel_id, None)
        if channel is None:
            return
        active_channels.set(len(self._channels))
        logger.info(
            "channel_disconnected",
            channel_id=channel_id,
            session_id=channel.session_id,
            live=len(self._channels),
        )

    async def join(self, channel: Channel, session_id: str, seats: Iterable[Any]) -> None:
        """Bind a session to the channel and reply with the current seat snapshot."""
        channel.session_id = session_id
        logger.info("channel_joined", channel_id=channel.id, session_id=session_id)
        await self.send(
            channel,
            Joined(session_id=session_id, seats=[SeatState.model_validate(seat) for seat in seats]),
        )

    async def send(self, channel: Channel, event: RealtimeEvent) -> bool:
        """Direct reply to one channel. A dead channel is pruned, not raised."""
        if not channel.is_open:
            self._prune(channel, reason="closed")
            return False
        try:
            await channel.websocket.send_text(event.to_json())
        except Exception as e:
            self._prune(channel, reason="send_failed", error=str(e))
            return False
        return True

    async def broadcast(self, event: RealtimeEvent) -> int:
        """
        Send one event to every open channel. Returns how many received it.

        Pre-broadcast hooks (cache invalidation) run first so that a client
        reacting to the event reads post-event state.
        """
        for hook in self._hooks:
            await hook(event)

        payload = event.to_json()
        record_broadcast(event.event)
        delivered = 0

        async with self._broadcast_lock:
            for channel in list(self._channels.values()):
                if channel.id not in self._channels:
                    continue
                if not channel.is_open:
                    self._prune(channel, reason="closed")
                    continue
                try:
                    await channel.websocket.send_text(payload)
                except Exception as e:
                    self._prune(channel, reason="send_failed", error=str(e))
                    continue
                delivered += 1

        logger.debug("event_broadcast", event_name=event.event, delivered=delivered)
        return delivered

    def _prune(self, channel: Channel, reason: str, error: Optional[str] = None) -> None:
        if self._channels.pop(channel.id, None) is None:
            return
        channels_pruned.inc()
        active_channels.set(len(self._channels))
        logger.warning("channel_pruned", channel_id=channel.id, reason=reason, error=error)
