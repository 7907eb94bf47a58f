"""Create seats table: hold ledger with holder invariant and hot-path indexes.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "seats",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("section_id", sa.String(64), nullable=False),
        sa.Column("row_id", sa.String(64), nullable=True),
        sa.Column("col", sa.Integer(), nullable=False),
        sa.Column("price_tier", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'available'")),
        sa.Column("held_by", sa.String(64), nullable=True),
        sa.Column("held_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('available', 'held', 'reserved', 'sold')",
            name="check_seat_status",
        ),
        # A seat is held exactly when it has a holder. Every ledger transition
        # and the admin override maintain this; the constraint is the backstop.
        sa.CheckConstraint(
            "(status = 'held' AND held_by IS NOT NULL) OR (status <> 'held' AND held_by IS NULL)",
            name="check_seat_hold_has_holder",
        ),
    )
    # Seat map listing: ORDER BY section_id, id with OFFSET/LIMIT
    op.create_index("ix_seats_section_id_id", "seats", ["section_id", "id"])
    # Hold cap: COUNT(*) WHERE held_by = :sid AND status = 'held', run before every hold
    op.create_index("ix_seats_held_by_status", "seats", ["held_by", "status"])
    # Expiry sweep: WHERE status = 'held' AND held_at < :cutoff
    op.create_index("ix_seats_status_held_at", "seats", ["status", "held_at"])


def downgrade() -> None:
    op.drop_index("ix_seats_status_held_at", table_name="seats")
    op.drop_index("ix_seats_held_by_status", table_name="seats")
    op.drop_index("ix_seats_section_id_id", table_name="seats")
    op.drop_table("seats")
