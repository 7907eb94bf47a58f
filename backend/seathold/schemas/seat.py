"""
Pydantic schemas for seat request/response validation.
JSON field names are camelCase to match the seat-map client.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SeatResponse(CamelModel):
    id: str
    section_id: str
    row_id: Optional[str]
    col: int
    price_tier: int
    status: str
    held_by: Optional[str]
    held_at: Optional[datetime]
    updated_at: Optional[datetime] = None


class SeatListResponse(CamelModel):
    data: list[SeatResponse]
    total: int
    page: int
    limit: int
    cached: bool = False


# Presence of ids is checked by the command processor so HTTP and WebSocket
# callers get the same error messages.
class SeatHoldRequest(CamelModel):
    seat_id: Optional[str] = None
    session_id: Optional[str] = None


class SeatCompleteRequest(CamelModel):
    seat_ids: list[str] = Field(default_factory=list)
    session_id: Optional[str] = None


class SeatStatusUpdate(CamelModel):
    seats: list[str] = Field(default_factory=list)
    status: Optional[str] = None
    held_by: Optional[str] = None


class SeatStatusUpdateResponse(CamelModel):
    success: bool = True
    updated: int
    seats: list[str]


class SessionCreatedResponse(CamelModel):
    success: bool = True
    session_id: str
    message: str = "Session created successfully"


class SeatActionResponse(CamelModel):
    success: bool = True
    seat: SeatResponse
    message: str


class SeatCompleteResponse(CamelModel):
    success: bool = True
    reserved_seats: list[SeatResponse]
    count: int
    message: str = "Reservation completed successfully."


class CleanupResponse(CamelModel):
    success: bool = True
    released: int
    message: str = "Expired seat holds cleaned up successfully"
