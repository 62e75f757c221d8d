"""AccountLedger -- the only writer of user credit balances.

Every mutation is a signed delta applied by one conditional
``UPDATE ... RETURNING credits``; a debit whose guard matches no row means
the balance was too low (or the account is missing).  Balances are never
read into memory, adjusted and written back.

Each mutation also appends a ``credit_ledger`` row in the same transaction.
Transaction ownership stays with the calling service.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import CreditLedgerModel, UserModel
from carpool.domain.entities import Account
from carpool.domain.enums import LedgerEntryType
from carpool.domain.errors import InsufficientCreditsError, NotFoundError


class AccountLedger:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_account(self, user_id: int) -> Optional[Account]:
        result = await self.session.execute(
            select(UserModel.credits).where(UserModel.id == user_id)
        )
        credits = result.scalar_one_or_none()
        if credits is None:
            return None
        return Account(user_id=user_id, credits=Decimal(credits))

    async def debit(
        self,
        user_id: int,
        amount: Decimal,
        *,
        ride_id: int | None = None,
        booking_id: int | None = None,
    ) -> Decimal:
        """Atomically subtract *amount* if the balance covers it.

        Returns the balance after the debit.  Raises
        ``InsufficientCreditsError`` when the guard fails.
        """
        if amount < 0:
            raise ValueError(f"debit amount must be non-negative, got {amount}")
        result = await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id, UserModel.credits >= amount)
            .values(credits=UserModel.credits - amount)
            .returning(UserModel.credits)
            .execution_options(synchronize_session=False)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            if await self.get_account(user_id) is None:
                raise NotFoundError("Account", user_id)
            raise InsufficientCreditsError(amount, user_id)

        await self._record(
            user_id,
            LedgerEntryType.BOOKING_DEBIT,
            -amount,
            balance,
            ride_id=ride_id,
            booking_id=booking_id,
        )
        return Decimal(balance)

    async def credit(
        self,
        user_id: int,
        amount: Decimal,
        entry_type: LedgerEntryType,
        *,
        ride_id: int | None = None,
        booking_id: int | None = None,
    ) -> Decimal:
        if amount < 0:
            raise ValueError(f"credit amount must be non-negative, got {amount}")
        result = await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(credits=UserModel.credits + amount)
            .returning(UserModel.credits)
            .execution_options(synchronize_session=False)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFoundError("Account", user_id)

        await self._record(
            user_id, entry_type, amount, balance, ride_id=ride_id, booking_id=booking_id
        )
        return Decimal(balance)

    async def entries_for(self, user_id: int) -> list[CreditLedgerModel]:
        result = await self.session.execute(
            select(CreditLedgerModel)
            .where(CreditLedgerModel.user_id == user_id)
            .order_by(CreditLedgerModel.id)
        )
        return list(result.scalars().all())

    async def _record(
        self,
        user_id: int,
        entry_type: LedgerEntryType,
        amount: Decimal,
        balance_after: Decimal,
        *,
        ride_id: int | None,
        booking_id: int | None,
    ) -> None:
        self.session.add(
            CreditLedgerModel(
                user_id=user_id,
                entry_type=entry_type,
                amount=amount,
                balance_after=balance_after,
                ride_id=ride_id,
                booking_id=booking_id,
            )
        )
        await self.session.flush()
