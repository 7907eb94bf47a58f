"""
Seat model: the hold ledger's single source of truth.

Key design decisions:
- `id` is a stable string such as "A-1-3"; the section/row/column encoding is
  cosmetic, the real attributes live in their own columns
- `held_by`/`held_at` describe the current hold; a CHECK constraint keeps
  `status = 'held'` and a non-null holder in lockstep
- Composite indexes match the three hot queries: listing, per-session hold
  counting and the expiry sweep
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Index, CheckConstraint

from seathold.db.base import Base, TimestampMixin


class SeatStatus(str, enum.Enum):
    AVAILABLE = "available"
    HELD = "held"
    RESERVED = "reserved"
    SOLD = "sold"

    @classmethod
    def values(cls) -> list[str]:
        return [status.value for status in cls]


class Seat(Base, TimestampMixin):
    __tablename__ = "seats"

    id = Column(String(64), primary_key=True)
    section_id = Column(String(64), nullable=False)
    row_id = Column(String(64), nullable=True)
    col = Column(Integer, nullable=False)
    price_tier = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=SeatStatus.AVAILABLE.value)
    held_by = Column(String(64), nullable=True)
    held_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('available', 'held', 'reserved', 'sold')",
            name="check_seat_status",
        ),
        CheckConstraint(
            "(status = 'held' AND held_by IS NOT NULL) OR (status <> 'held' AND held_by IS NULL)",
            name="check_seat_hold_has_holder",
        ),
        Index("ix_seats_section_id_id", "section_id", "id"),
        Index("ix_seats_held_by_status", "held_by", "status"),
        Index("ix_seats_status_held_at", "status", "held_at"),
    )

    @property
    def is_held(self) -> bool:
        return self.status == SeatStatus.HELD.value

    def __repr__(self) -> str:
        return f"<Seat(id={self.id}, status={self.status}, held_by={self.held_by})>"
