from seathold.schemas.seat import (
    SeatResponse, SeatListResponse, SeatHoldRequest, SeatCompleteRequest,
    SeatStatusUpdate, SeatStatusUpdateResponse, SessionCreatedResponse,
    SeatActionResponse, SeatCompleteResponse, CleanupResponse,
)
from seathold.schemas.channel import parse_command, JoinCommand, HoldCommand, ReleaseCommand, CompleteCommand

__all__ = [
    "SeatResponse", "SeatListResponse", "SeatHoldRequest", "SeatCompleteRequest",
    "SeatStatusUpdate", "SeatStatusUpdateResponse", "SessionCreatedResponse",
    "SeatActionResponse", "SeatCompleteResponse", "CleanupResponse",
    "parse_command", "JoinCommand", "HoldCommand", "ReleaseCommand", "CompleteCommand",
]
