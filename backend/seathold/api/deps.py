"""
Dependency providers for the services wired onto `app.state` at startup.
"""

from typing import Optional

from fastapi import Header, Request

from seathold.realtime.registry import ConnectionRegistry
from seathold.services.seat_service import SeatCommandProcessor


def get_processor(request: Request) -> SeatCommandProcessor:
    return request.app.state.processor


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_session_header(x_session_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Session token from the `x-session-id` header, if the client sent one."""
    return x_session_id
