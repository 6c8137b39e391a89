"""Create reservations and listing_calendars

Revision ID: 3a1f0c9d2b7e
Revises:
Create Date: 2026-10-19 09:12:31.402118

"""

import sqlalchemy as sa

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3a1f0c9d2b7e"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Upgrade schema."""
    is_postgres = op.get_bind().dialect.name == "postgresql"

    op.create_table(
        "reservations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("listing_id", sa.String(64), nullable=False),
        sa.Column("start", sa.Date(), nullable=False),
        sa.Column("end", sa.Date(), nullable=False),
        sa.Column("guest_count", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("state", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("payment_state", sa.String(16), nullable=False, server_default="unpaid"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('start < "end"', name="ck_reservations_range"),
        sa.CheckConstraint("guest_count > 0", name="ck_reservations_guest_count"),
        sa.CheckConstraint("total_price > 0", name="ck_reservations_total_price"),
    )
    op.create_index(
        "ix_reservations_listing_range", "reservations", ["listing_id", "start", "end"]
    )
    op.create_index(
        "ix_reservations_requester_created", "reservations", ["requester_id", "created_at"]
    )
    op.create_index("ix_reservations_state_end", "reservations", ["state", "end"])

    op.create_table(
        "listing_calendars",
        sa.Column("listing_id", sa.String(64), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    if is_postgres:
        # Last line of defence against double booking: no two non-cancelled
        # reservations on a listing may share a night.
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE reservations
            ADD CONSTRAINT ex_reservations_no_overlap
            EXCLUDE USING gist (
                listing_id WITH =,
                daterange(start, "end", '[)') WITH &&
            )
            WHERE (state <> 'cancelled')
            """
        )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("listing_calendars")

    op.drop_index("ix_reservations_state_end", table_name="reservations")
    op.drop_index("ix_reservations_requester_created", table_name="reservations")
    op.drop_index("ix_reservations_listing_range", table_name="reservations")
    op.drop_table("reservations")
