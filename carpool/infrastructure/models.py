"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``         -- accounts holding a credit balance
* ``rides``         -- rides published by drivers
* ``bookings``      -- seats booked by passengers on a ride
* ``credit_ledger`` -- one row per balance mutation

Indexes
-------
* Partial **unique** index on ``bookings (ride_id, user_id)`` for non-cancelled
  rows: at most one active booking per passenger and ride.
* **Unique** on ``bookings.confirmation_token``.
* **B-Tree** on ``status``, ``driver_id``, ``ride_id`` for the lifecycle queries.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
    text,
)

from .database import Base
from carpool.domain.enums import BookingStatus, LedgerEntryType, RideStatus

CREDITS = Numeric(12, 2)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    credits = Column(CREDITS, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, nullable=True)
    seats_offered = Column(Integer, nullable=False)
    price_per_seat = Column(CREDITS, nullable=False)
    status = Column(Enum(RideStatus), default=RideStatus.PUBLISHED, nullable=False)
    total_net_credits_earned = Column(CREDITS, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("seats_offered >= 1", name="ck_rides_seats_offered"),
        Index("idx_rides_status", "status"),
        Index("idx_rides_driver", "driver_id"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    seats_booked = Column(Integer, nullable=False, default=1)
    status = Column(
        Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False
    )
    confirmation_token = Column(String(128), unique=True, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    net_credits_paid = Column(CREDITS, nullable=True)
    passenger_confirmed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("seats_booked >= 1", name="ck_bookings_seats_booked"),
        Index(
            "uq_bookings_active_ride_user",
            "ride_id",
            "user_id",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
        Index("idx_bookings_ride", "ride_id"),
        Index("idx_bookings_status", "status"),
    )


class CreditLedgerModel(Base):
    __tablename__ = "credit_ledger"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    entry_type = Column(Enum(LedgerEntryType), nullable=False)
    amount = Column(CREDITS, nullable=False)  # signed
    balance_after = Column(CREDITS, nullable=False)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_credit_ledger_user", "user_id"),)
