"""Default Year-Lock Guard backed by the year_locks table."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from yearlists.domain.exceptions import YearLockedError
from yearlists.domain.ports import IYearLockGuard
from yearlists.domain.rules import MutationScope, can_mutate
from yearlists.infrastructure.persistence.repositories import YearLockRepository

logger = logging.getLogger(__name__)


class YearLockGuard(IYearLockGuard):
    """Consults year lock state inside the caller's transaction.

    Hey future me - construct one per unit of work with the transaction's session, so the
    lock read and the writes it protects see the same snapshot.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._locks = YearLockRepository(session)

    async def is_year_locked(self, year: int | None) -> bool:
        if year is None:
            return False
        return await self._locks.is_locked(year)

    async def validate_year_not_locked(self, year: int | None, action: str) -> None:
        await self.ensure_can_mutate(year, False, action, MutationScope.YEAR)

    async def validate_main_list_not_locked(
        self, year: int | None, is_main: bool, action: str
    ) -> None:
        await self.ensure_can_mutate(year, is_main, action, MutationScope.MAIN_LIST)

    async def ensure_can_mutate(
        self,
        effective_year: int | None,
        is_main: bool,
        action: str,
        scope: MutationScope = MutationScope.MAIN_LIST,
    ) -> None:
        """Raise YearLockedError when the lock rules deny `action`.

        Args:
            effective_year: Effective year of the list being mutated
            is_main: Whether that list is its year's main list
            action: Human readable action for the error message
            scope: MutationScope.YEAR or MutationScope.MAIN_LIST

        Raises:
            YearLockedError: If the mutation is not permitted
        """
        # Skip the lookup when no lock could apply
        if effective_year is None:
            return
        if scope is MutationScope.MAIN_LIST and not is_main:
            return

        locked = await self.is_year_locked(effective_year)
        decision = can_mutate(effective_year, is_main, locked, action, scope)
        if decision.allowed:
            return

        logger.info(
            "Mutation denied by year lock",
            extra={"year": effective_year, "action": action, "scope": scope.value},
        )
        raise YearLockedError(effective_year, action, decision.reason or "Year is locked")
