"""Tests for YearLockGuard."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from yearlists.application.services.year_lock_guard import YearLockGuard
from yearlists.domain.exceptions import YearLockedError
from yearlists.domain.rules import MutationScope
from yearlists.infrastructure.persistence.database import Database
from yearlists.infrastructure.persistence.repositories import YearLockRepository


class TestYearLockGuard:
    """Test the guard's decisions with a mocked lock repository."""

    @pytest.fixture
    def locks(self) -> AsyncMock:
        locks = AsyncMock(spec=YearLockRepository)
        locks.is_locked.side_effect = lambda year: year == 2022
        return locks

    @pytest.fixture
    def guard(self, locks: AsyncMock) -> YearLockGuard:
        guard = YearLockGuard(AsyncMock(spec=AsyncSession))
        guard._locks = locks
        return guard

    async def test_main_list_in_locked_year_rejected(self, guard: YearLockGuard) -> None:
        with pytest.raises(YearLockedError) as exc_info:
            await guard.ensure_can_mutate(2022, True, "reorder list items")

        exc = exc_info.value
        assert exc.status_code == 403
        assert exc.year == 2022
        assert exc.message == "Cannot reorder list items: Main list for year 2022 is locked"

    async def test_non_main_list_skips_lookup(
        self, guard: YearLockGuard, locks: AsyncMock
    ) -> None:
        await guard.ensure_can_mutate(2022, False, "update comment")
        locks.is_locked.assert_not_called()

    async def test_yearless_list_skips_lookup(
        self, guard: YearLockGuard, locks: AsyncMock
    ) -> None:
        await guard.ensure_can_mutate(None, True, "update list", MutationScope.YEAR)
        locks.is_locked.assert_not_called()

    async def test_year_scope_rejects_non_main(self, guard: YearLockGuard) -> None:
        with pytest.raises(YearLockedError, match="Year 2022 is locked"):
            await guard.validate_year_not_locked(2022, "change main status")

    async def test_unlocked_year_allows_everything(self, guard: YearLockGuard) -> None:
        await guard.validate_year_not_locked(2024, "change main status")
        await guard.validate_main_list_not_locked(2024, True, "update list")

    async def test_validate_main_list_not_locked(self, guard: YearLockGuard) -> None:
        await guard.validate_main_list_not_locked(2022, False, "update list")
        with pytest.raises(YearLockedError):
            await guard.validate_main_list_not_locked(2022, True, "update list")

    async def test_is_year_locked(self, guard: YearLockGuard) -> None:
        assert await guard.is_year_locked(2022) is True
        assert await guard.is_year_locked(2023) is False
        assert await guard.is_year_locked(None) is False


class TestYearLockGuardWithDatabase:
    async def test_reads_lock_inside_session(self, database: Database) -> None:
        async with database.session_scope() as session:
            await YearLockRepository(session).lock_year(2021)
            guard = YearLockGuard(session)
            assert await guard.is_year_locked(2021) is True
            with pytest.raises(YearLockedError):
                await guard.ensure_can_mutate(2021, True, "update list")
