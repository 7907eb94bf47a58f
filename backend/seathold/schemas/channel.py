"""
Client → server realtime commands.

Messages arrive as `{"event": <name>, "data": {...}}`. Older clients send the
snake_case or camelCase long names (`hold_seat`, `holdSeat`, ...) and put the
fields next to `event` instead of under `data`; both shapes are accepted.
Everything is validated into a tagged union here, before the command
processor sees it.
"""

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from seathold.core.exceptions import SeatValidationError

EVENT_ALIASES = {
    "join": "join",
    "join_session": "join",
    "joinSession": "join",
    "hold": "hold",
    "hold_seat": "hold",
    "holdSeat": "hold",
    "release": "release",
    "release_seat": "release",
    "releaseSeat": "release",
    "complete": "complete",
    "complete_seats": "complete",
    "completeSeats": "complete",
}


class ChannelCommand(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: Optional[str] = None


class JoinCommand(ChannelCommand):
    event: Literal["join"]


class HoldCommand(ChannelCommand):
    event: Literal["hold"]
    seat_id: Optional[str] = None


class ReleaseCommand(ChannelCommand):
    event: Literal["release"]
    seat_id: Optional[str] = None


class CompleteCommand(ChannelCommand):
    event: Literal["complete"]
    seat_ids: list[str] = Field(default_factory=list)


Command = Annotated[
    Union[JoinCommand, HoldCommand, ReleaseCommand, CompleteCommand],
    Field(discriminator="event"),
]

_command_adapter = TypeAdapter(Command)


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"][1:])
    return f"Invalid {location or 'payload'}: {first['msg']}"


def parse_command(raw: Union[str, bytes]) -> Command:
    """Decode one raw channel message. Raises SeatValidationError on anything unusable."""
    try:
        message = json.loads(raw)
    except ValueError:
        raise SeatValidationError("Invalid JSON")

    if not isinstance(message, dict):
        raise SeatValidationError("Invalid message format")

    event = message.get("event")
    if not event or not isinstance(event, str):
        raise SeatValidationError("Missing event type")

    canonical = EVENT_ALIASES.get(event)
    if canonical is None:
        raise SeatValidationError(f"Unknown event: {event}")

    data = message.get("data")
    if data is None:
        payload = {key: value for key, value in message.items() if key != "event"}
    elif isinstance(data, dict):
        payload = dict(data)
    else:
        raise SeatValidationError("Invalid message format")
    payload["event"] = canonical

    try:
        return _command_adapter.validate_python(payload)
    except ValidationError as exc:
        raise SeatValidationError(_describe(exc)) from exc
