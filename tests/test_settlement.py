"""Passenger confirmation and driver payout."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from carpool.domain.enums import BookingStatus, RideStatus
from carpool.domain.errors import ErrorCode
from carpool.infrastructure.repositories import BookingStore
from carpool.services.settlement import SettlementService


class FailingAudit:
    async def publish(self, event_type, payload):
        raise ConnectionError("audit stream unreachable")


class TestConfirmAndSettle:
    @pytest.mark.asyncio
    async def test_single_seat_ride_end_to_end(self, data, services):
        driver = await data.user(credits="0")
        a = await data.user(credits="10.00")
        b = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price="10.00")

        booked = await services.book(ride, a)
        assert booked.ok
        assert await data.balance(a) == Decimal("0.00")
        assert (await services.book(ride, b)).code == ErrorCode.SEATS_UNAVAILABLE

        tokens = await services.complete(ride, driver)
        first = await services.settle(tokens[a])

        assert first.ok
        assert first.value.already_processed is False
        assert first.value.net_amount_credited == Decimal("8.00")
        assert await data.balance(driver) == Decimal("8.00")
        ride_row = await data.ride_row(ride)
        assert Decimal(ride_row.total_net_credits_earned) == Decimal("8.00")
        booking_row = await data.booking_row(booked.value.id)
        assert booking_row.status == BookingStatus.CONFIRMED_AND_CREDITED
        assert booking_row.passenger_confirmed_at is not None

        again = await services.settle(tokens[a])

        assert again.ok
        assert again.value.already_processed is True
        assert again.value.net_amount_credited == Decimal("8.00")
        assert await data.balance(driver) == Decimal("8.00")
        ride_row = await data.ride_row(ride)
        assert Decimal(ride_row.total_net_credits_earned) == Decimal("8.00")

    @pytest.mark.asyncio
    async def test_payout_scales_with_seats_but_commission_does_not(self, data, services):
        driver = await data.user()
        passenger = await data.user(credits="100.00")
        ride = await data.ride(driver, seats=4, price="12.50")
        await services.book(ride, passenger, seats=3)
        tokens = await services.complete(ride, driver)

        result = await services.settle(tokens[passenger])

        assert result.value.net_amount_credited == Decimal("35.50")
        assert result.value.commission == Decimal("2.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "price, commission_event",
        [("2.00", Decimal("2.00")), ("1.50", Decimal("1.50"))],
    )
    async def test_fare_at_or_below_commission_settles_without_payout(
        self, data, services, audit, price, commission_event
    ):
        driver = await data.user(credits="5.00")
        passenger = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price=price)
        booking = (await services.book(ride, passenger)).value
        tokens = await services.complete(ride, driver)

        result = await services.settle(tokens[passenger])

        assert result.ok
        assert result.value.net_amount_credited == Decimal("0")
        assert await data.balance(driver) == Decimal("5.00")
        row = await data.booking_row(booking.id)
        assert row.status == BookingStatus.CONFIRMED_AND_CREDITED
        assert Decimal(row.net_credits_paid) == Decimal("0")
        assert audit.of_type("commission_collected")[0]["amount"] == commission_event

    @pytest.mark.asyncio
    async def test_commission_is_configurable(self, data, make_services):
        services = make_services(commission=Decimal("0.50"))
        driver = await data.user()
        passenger = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price="10.00")
        await services.book(ride, passenger)
        tokens = await services.complete(ride, driver)

        result = await services.settle(tokens[passenger])

        assert result.value.net_amount_credited == Decimal("9.50")
        assert await data.balance(driver) == Decimal("9.50")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "no-such-token"])
    async def test_unknown_or_empty_token(self, services, token):
        result = await services.settle(token)
        assert result.code == ErrorCode.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_cancelled_booking_cannot_be_settled(self, data, services):
        driver = await data.user()
        passenger = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price="10.00")
        booking = (await services.book(ride, passenger)).value
        await services.cancel(booking.id, passenger)
        await data.patch_booking(booking.id, confirmation_token="stale-token")

        result = await services.settle("stale-token")

        assert result.code == ErrorCode.INVALID_STATE
        assert await data.balance(driver) == Decimal("0.00")
        row = await data.booking_row(booking.id)
        assert row.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_expired_token_is_rejected_and_nothing_moves(self, data, services):
        driver = await data.user()
        passenger = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price="10.00")
        booking = (await services.book(ride, passenger)).value
        tokens = await services.complete(ride, driver)
        await data.patch_booking(
            booking.id,
            token_expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )

        result = await services.settle(tokens[passenger])

        assert result.code == ErrorCode.INVALID_TOKEN
        assert await data.balance(driver) == Decimal("0.00")
        row = await data.booking_row(booking.id)
        assert row.status == BookingStatus.CONFIRMED_PENDING_PASSENGER_CONFIRMATION

    @pytest.mark.asyncio
    async def test_expiry_does_not_hide_an_earlier_settlement(self, data, services):
        driver = await data.user()
        passenger = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price="10.00")
        booking = (await services.book(ride, passenger)).value
        tokens = await services.complete(ride, driver)
        await services.settle(tokens[passenger])
        await data.patch_booking(
            booking.id,
            token_expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )

        result = await services.settle(tokens[passenger])

        assert result.ok
        assert result.value.already_processed is True

    @pytest.mark.asyncio
    async def test_ride_completes_when_last_passenger_confirms(self, data, services):
        driver = await data.user()
        a = await data.user(credits="10.00")
        b = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=2, price="10.00")
        await services.book(ride, a)
        await services.book(ride, b)
        tokens = await services.complete(ride, driver)

        first = await services.settle(tokens[a])
        assert first.value.ride_completed is False
        assert (await data.ride_row(ride)).status == RideStatus.COMPLETED_PENDING_CONFIRMATION

        second = await services.settle(tokens[b])
        assert second.value.ride_completed is True
        assert (await data.ride_row(ride)).status == RideStatus.COMPLETED
        assert await data.balance(driver) == Decimal("16.00")


class TestSettlementEvents:
    @pytest.mark.asyncio
    async def test_events_published_once(self, data, services, audit):
        driver = await data.user()
        passenger = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price="10.00")
        await services.book(ride, passenger)
        tokens = await services.complete(ride, driver)

        await services.settle(tokens[passenger])
        await services.settle(tokens[passenger])

        transferred = audit.of_type("credits_transferred")
        assert len(transferred) == 1
        assert transferred[0]["driver_id"] == driver
        assert transferred[0]["amount"] == Decimal("8.00")
        assert len(audit.of_type("commission_collected")) == 1
        completed = audit.of_type("ride_completed")
        assert completed == [
            {"ride_id": ride, "driver_id": driver, "ride_closed": True}
        ]

    @pytest.mark.asyncio
    async def test_failed_audit_does_not_undo_settlement(
        self, data, make_services
    ):
        services = make_services(audit_publisher=FailingAudit())
        driver = await data.user()
        passenger = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price="10.00")
        await services.book(ride, passenger)
        tokens = await services.complete(ride, driver)

        result = await services.settle(tokens[passenger])

        assert result.ok
        assert result.value.net_amount_credited == Decimal("8.00")
        assert await data.balance(driver) == Decimal("8.00")


class TestSettlementLookup:
    @pytest.mark.asyncio
    async def test_booking_vanishing_under_lock_reports_invalid_token(
        self, data, services, session_factory, audit
    ):
        class VanishingBookings(BookingStore):
            async def get_for_update(self, booking_id):
                return None

        driver = await data.user()
        passenger = await data.user(credits="10.00")
        ride = await data.ride(driver, seats=1, price="10.00")
        await services.book(ride, passenger)
        tokens = await services.complete(ride, driver)

        async with session_factory() as s:
            service = SettlementService(
                s, bookings=VanishingBookings(s), audit=audit, commission=Decimal("2.00")
            )
            result = await service.confirm_and_settle(tokens[passenger])

        assert result.code == ErrorCode.INVALID_TOKEN
        assert await data.balance(driver) == Decimal("0.00")
