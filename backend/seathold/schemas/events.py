"""
Server → client realtime events.

Every event is tagged by `event` and serialized camelCase. Broadcast events
are identical for every recipient; `connected`, `joined` and `error` are
direct replies to one channel.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RealtimeEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SeatHeld(RealtimeEvent):
    event: Literal["seat_held"] = "seat_held"
    seat_id: str
    session_id: str


class SeatReleased(RealtimeEvent):
    event: Literal["seat_released"] = "seat_released"
    seat_id: str
    session_id: str


class SeatsSold(RealtimeEvent):
    event: Literal["seats_sold"] = "seats_sold"
    seat_ids: list[str]
    session_id: str


class SeatStatusChanged(RealtimeEvent):
    event: Literal["seat_status_changed"] = "seat_status_changed"
    seat_ids: list[str]
    new_status: str


class HoldsCleaned(RealtimeEvent):
    event: Literal["cleanup"] = "cleanup"
    released_count: int
    message: str = "Expired sessions cleaned"


class Connected(RealtimeEvent):
    event: Literal["connected"] = "connected"
    client_id: str


class SeatState(BaseModel):
    """One entry of the `joined` snapshot."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    status: str
    held_by: Optional[str] = None


class Joined(RealtimeEvent):
    event: Literal["joined"] = "joined"
    session_id: str
    seats: list[SeatState]


class ErrorEvent(RealtimeEvent):
    event: Literal["error"] = "error"
    message: str
    code: str = "error"
