from seathold.models.seat import Seat, SeatStatus

__all__ = ["Seat", "SeatStatus"]
