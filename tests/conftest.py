"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) per test so tests run
without Docker / PostgreSQL / Redis.  SQLite ignores ``FOR UPDATE``, so the
test engine opens every transaction with ``BEGIN IMMEDIATE``: concurrent
sessions then queue on the database write lock the same way PostgreSQL
queues them on the ride row.
"""

import itertools
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy import event, select, update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from carpool.domain.enums import RideStatus
from carpool.infrastructure.database import Base
from carpool.infrastructure.models import BookingModel, RideModel, UserModel
from carpool.services.booking import BookingService
from carpool.services.ride_lifecycle import RideLifecycleService
from carpool.services.settlement import SettlementService


# ── Engine ────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'carpool.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )

    @event.listens_for(eng.sync_engine, "connect")
    def _driver_autocommit(dbapi_connection, connection_record):
        # let the "begin" hook below emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Collaborator doubles ──────────────────────────────────────────────


class RecordingAudit:
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    async def publish(self, event_type, payload):
        self.events.append((event_type, payload))

    def of_type(self, event_type):
        return [p for t, p in self.events if t == event_type]


class RecordingNotifier:
    def __init__(self):
        self.confirmations: list[tuple[int, int, str]] = []
        self.cancellations: list[tuple[int, int, Decimal]] = []

    async def send_confirmation_request(self, recipient_user_id, ride_id, token):
        self.confirmations.append((recipient_user_id, ride_id, token))

    async def send_ride_cancelled(self, recipient_user_id, ride_id, refund):
        self.cancellations.append((recipient_user_id, ride_id, refund))


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# ── Data & service helpers ────────────────────────────────────────────


class Data:
    """Seeds and inspects rows, one committed session per call."""

    _seq = itertools.count(1)

    def __init__(self, session_factory):
        self.sessions = session_factory

    async def user(self, credits="0", name: Optional[str] = None) -> int:
        n = next(self._seq)
        async with self.sessions() as s:
            row = UserModel(
                name=name or f"User {n}",
                email=f"user{n}@example.com",
                credits=Decimal(credits),
            )
            s.add(row)
            await s.commit()
            return row.id

    async def ride(
        self,
        driver_id: int,
        seats: int = 1,
        price="10.00",
        status: RideStatus = RideStatus.PUBLISHED,
    ) -> int:
        async with self.sessions() as s:
            row = RideModel(
                driver_id=driver_id,
                vehicle_id=1,
                seats_offered=seats,
                price_per_seat=Decimal(price),
                status=status,
                total_net_credits_earned=Decimal("0"),
            )
            s.add(row)
            await s.commit()
            return row.id

    async def balance(self, user_id: int) -> Decimal:
        async with self.sessions() as s:
            result = await s.execute(select(UserModel.credits).where(UserModel.id == user_id))
            return Decimal(result.scalar_one())

    async def ride_row(self, ride_id: int) -> RideModel:
        async with self.sessions() as s:
            return await s.get(RideModel, ride_id)

    async def booking_row(self, booking_id: int) -> BookingModel:
        async with self.sessions() as s:
            return await s.get(BookingModel, booking_id)

    async def bookings_on(self, ride_id: int) -> list[BookingModel]:
        async with self.sessions() as s:
            result = await s.execute(
                select(BookingModel)
                .where(BookingModel.ride_id == ride_id)
                .order_by(BookingModel.id)
            )
            return list(result.scalars().all())

    async def patch_booking(self, booking_id: int, **values) -> None:
        async with self.sessions() as s:
            await s.execute(
                update(BookingModel).where(BookingModel.id == booking_id).values(**values)
            )
            await s.commit()


class Services:
    """Runs each operation on its own session, like one request each."""

    def __init__(self, session_factory, audit, notifier, commission=Decimal("2.00")):
        self.sessions = session_factory
        self.audit = audit
        self.notifier = notifier
        self.commission = commission

    async def book(self, ride_id, passenger_id, seats=1):
        async with self.sessions() as s:
            return await BookingService(s, audit=self.audit).create_booking(
                ride_id, passenger_id, seats
            )

    async def cancel(self, booking_id, requester_id):
        async with self.sessions() as s:
            return await BookingService(s, audit=self.audit).cancel_booking(
                booking_id, requester_id
            )

    async def settle(self, token):
        async with self.sessions() as s:
            service = SettlementService(s, audit=self.audit, commission=self.commission)
            return await service.confirm_and_settle(token)

    def _lifecycle(self, s):
        return RideLifecycleService(s, notifier=self.notifier)

    async def start(self, ride_id, driver_id):
        async with self.sessions() as s:
            return await self._lifecycle(s).start_ride(ride_id, driver_id)

    async def finish(self, ride_id, driver_id):
        async with self.sessions() as s:
            return await self._lifecycle(s).finish_ride(ride_id, driver_id)

    async def cancel_ride(self, ride_id, driver_id):
        async with self.sessions() as s:
            return await self._lifecycle(s).cancel_ride(ride_id, driver_id)

    async def complete(self, ride_id, driver_id):
        """Start and finish a ride; returns {passenger_id: token}."""
        await self.start(ride_id, driver_id)
        before = len(self.notifier.confirmations)
        await self.finish(ride_id, driver_id)
        return {p: t for p, r, t in self.notifier.confirmations[before:] if r == ride_id}


@pytest.fixture
def data(session_factory) -> Data:
    return Data(session_factory)


@pytest.fixture
def services(session_factory, audit, notifier) -> Services:
    return Services(session_factory, audit, notifier)


@pytest.fixture
def make_services(session_factory, audit, notifier):
    """Services with a non-default audit sink or commission."""

    def _make(audit_publisher=None, commission=Decimal("2.00")) -> Services:
        return Services(
            session_factory, audit_publisher or audit, notifier, commission=commission
        )

    return _make
