"""Initial schema: users, rides, bookings and the credit ledger.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

CREDITS = sa.Numeric(12, 2)

RIDE_STATUSES = (
    "PUBLISHED",
    "IN_PROGRESS",
    "COMPLETED_PENDING_CONFIRMATION",
    "COMPLETED",
    "CANCELLED",
)
BOOKING_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "CANCELLED",
    "CONFIRMED_PENDING_PASSENGER_CONFIRMATION",
    "CONFIRMED_AND_CREDITED",
)
LEDGER_ENTRY_TYPES = ("BOOKING_DEBIT", "BOOKING_REFUND", "RIDE_PAYOUT")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("credits", CREDITS, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("vehicle_id", sa.Integer, nullable=True),
        sa.Column("seats_offered", sa.Integer, nullable=False),
        sa.Column("price_per_seat", CREDITS, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*RIDE_STATUSES, name="ridestatus"),
            server_default="PUBLISHED",
            nullable=False,
        ),
        sa.Column(
            "total_net_credits_earned", CREDITS, nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.CheckConstraint("seats_offered >= 1", name="ck_rides_seats_offered"),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False
        ),
        sa.Column("seats_booked", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "status",
            sa.Enum(*BOOKING_STATUSES, name="bookingstatus"),
            server_default="PENDING",
            nullable=False,
        ),
        sa.Column(
            "confirmation_token", sa.String(128), unique=True, nullable=True
        ),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("net_credits_paid", CREDITS, nullable=True),
        sa.Column(
            "passenger_confirmed_at", sa.DateTime(timezone=True), nullable=True
        ),
        *_timestamps(),
        sa.CheckConstraint("seats_booked >= 1", name="ck_bookings_seats_booked"),
    )
    op.create_index(
        "uq_bookings_active_ride_user",
        "bookings",
        ["ride_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )
    op.create_index("idx_bookings_ride", "bookings", ["ride_id"])
    op.create_index("idx_bookings_status", "bookings", ["status"])

    # ── credit_ledger ─────────────────────────────────────────────────
    op.create_table(
        "credit_ledger",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "entry_type",
            sa.Enum(*LEDGER_ENTRY_TYPES, name="ledgerentrytype"),
            nullable=False,
        ),
        sa.Column("amount", CREDITS, nullable=False),
        sa.Column("balance_after", CREDITS, nullable=False),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=True),
        sa.Column(
            "booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=True
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_credit_ledger_user", "credit_ledger", ["user_id"])


def downgrade() -> None:
    op.drop_table("credit_ledger")
    op.drop_table("bookings")
    op.drop_table("rides")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS ledgerentrytype")
    op.execute("DROP TYPE IF EXISTS bookingstatus")
    op.execute("DROP TYPE IF EXISTS ridestatus")
