"""Setup wizard: year/main-list status, bulk assignment and snoozing."""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from yearlists.application.services.list_service import YearLockGuardFactory
from yearlists.application.services.year_lock_guard import YearLockGuard
from yearlists.config import Settings, get_settings
from yearlists.domain.entities import (
    UNSET,
    BulkUpdateEntry,
    BulkUpdateEntryResult,
    BulkUpdateResult,
    ListRecord,
    ListRef,
    SetupStatus,
    YearSummary,
    YearSummaryList,
)
from yearlists.domain.exceptions import (
    EntityNotFoundException,
    ValidationError,
    YearLockedError,
)
from yearlists.domain.rules import MutationScope
from yearlists.domain.value_objects import validate_year
from yearlists.infrastructure.observability import log_operation
from yearlists.infrastructure.persistence.database import Database
from yearlists.infrastructure.persistence.models import ensure_utc_aware, utc_now
from yearlists.infrastructure.persistence.repositories import (
    ListRepository,
    UserRepository,
)
from yearlists.infrastructure.persistence.transaction import with_transaction

logger = logging.getLogger(__name__)


class _EntryRejected(Exception):
    """Per-entry failure inside bulk_update; never escapes this module."""


class ListSetupService:
    """Helps a user give every list a year and every year a main list."""

    def __init__(
        self,
        database: Database,
        settings: Settings | None = None,
        year_lock_guard_factory: YearLockGuardFactory = YearLockGuard,
    ) -> None:
        self._database = database
        self._settings = settings or get_settings()
        self._year_lock_guard_factory = year_lock_guard_factory

    async def get_setup_status(
        self, user_id: str, dismissed_until: datetime | None = None
    ) -> SetupStatus:
        """Compute what the setup wizard should ask the user.

        Reports lists without their own year whose group has one, effective
        years that have lists but no main list, and a per-year summary.

        Args:
            user_id: Owner of the lists
            dismissed_until: Snooze timestamp; falls back to the stored user value
        """
        async with self._database.session_scope() as session:
            records = await ListRepository(session).list_for_user(user_id)
            if dismissed_until is None:
                user = await UserRepository(session).get(user_id)
                if user is not None and user.list_setup_dismissed_until is not None:
                    dismissed_until = ensure_utc_aware(user.list_setup_dismissed_until)

        lists_without_year = [
            ListRef(id=r.external_id, name=r.name)
            for r in records
            if r.year is None and r.group_id is not None and r.group_year is not None
        ]

        by_year: dict[int, list[ListRecord]] = {}
        for record in records:
            if record.effective_year is not None:
                by_year.setdefault(record.effective_year, []).append(record)

        years_summary = [
            YearSummary(
                year=year,
                has_main=any(r.is_main for r in by_year[year]),
                lists=[
                    YearSummaryList(id=r.external_id, name=r.name, is_main=r.is_main)
                    for r in by_year[year]
                ],
            )
            for year in sorted(by_year)
        ]
        years_needing_main = [s.year for s in years_summary if not s.has_main]

        return SetupStatus(
            needs_setup=bool(lists_without_year or years_needing_main),
            lists_without_year=lists_without_year,
            years_needing_main=years_needing_main,
            years_summary=years_summary,
            dismissed_until=dismissed_until,
        )

    # Hey future me - ONE transaction, but entries fail independently. Every check for an entry
    # happens before its writes, so a rejected entry leaves nothing behind and the loop moves on.
    # Later entries see the writes of earlier ones (same session).
    async def bulk_update(
        self, user_id: str, updates: Sequence[BulkUpdateEntry]
    ) -> BulkUpdateResult:
        """Assign years and main flags to many lists at once.

        Returns:
            Per-entry results plus the effective years whose aggregates the
            caller should recompute
        """
        lists_cfg = self._settings.lists

        async def apply_entry(
            session: AsyncSession, entry: BulkUpdateEntry, years: set[int]
        ) -> None:
            if not entry.list_id:
                raise _EntryRejected("Missing listId")

            lists = ListRepository(session)
            lst = await lists.get_owned(entry.list_id, user_id)
            if lst is None:
                raise _EntryRejected("List not found")

            if entry.year is UNSET:
                new_year = lst.year
            else:
                try:
                    new_year = validate_year(entry.year, lists_cfg.min_year, lists_cfg.max_year)
                except ValidationError as e:
                    raise _EntryRejected("Invalid year") from e

            new_is_main = lst.is_main if entry.is_main is None else bool(entry.is_main)
            old_effective = lst.effective_year
            new_effective = new_year if new_year is not None else lst.group_year

            if new_is_main and new_effective is None:
                raise _EntryRejected("List must be assigned to a year to be marked as main")

            guard = self._year_lock_guard_factory(session)
            main_changing = entry.is_main is not None and bool(entry.is_main) != lst.is_main
            try:
                for year in dict.fromkeys((old_effective, new_effective)):
                    if main_changing:
                        await guard.ensure_can_mutate(
                            year, lst.is_main, "change main status", MutationScope.YEAR
                        )
                    await guard.ensure_can_mutate(year, lst.is_main, "update main list")
            except YearLockedError as e:
                raise _EntryRejected(e.message) from e

            if new_is_main and new_effective is not None:
                await lists.clear_main_for_year(user_id, new_effective, exclude_list_id=lst.id)
            await lists.update_fields(lst.id, year=new_year, is_main=new_is_main)

            if old_effective is not None:
                years.add(old_effective)
            if new_is_main and new_effective is not None:
                years.add(new_effective)

        async def body(session: AsyncSession) -> BulkUpdateResult:
            result = BulkUpdateResult()
            for entry in updates:
                try:
                    await apply_entry(session, entry, result.years_to_recompute)
                except _EntryRejected as e:
                    result.results.append(
                        BulkUpdateEntryResult(list_id=entry.list_id, success=False, error=str(e))
                    )
                    continue
                result.results.append(BulkUpdateEntryResult(list_id=entry.list_id, success=True))
            return result

        async with log_operation(
            logger, "bulk_update", user_id=user_id, entries=len(updates)
        ) as fields:
            result = await with_transaction(self._database, body, "bulk_update")
            fields["succeeded"] = sum(1 for r in result.results if r.success)
            fields["years_to_recompute"] = sorted(result.years_to_recompute)
        return result

    async def dismiss_setup(self, user_id: str) -> datetime:
        """Snooze the setup wizard for the configured number of hours.

        Raises:
            EntityNotFoundException: Unknown user (404)
        """
        dismissed_until = utc_now() + timedelta(hours=self._settings.lists.setup_dismiss_hours)

        async def body(session: AsyncSession) -> None:
            if not await UserRepository(session).set_setup_dismissed_until(
                user_id, dismissed_until
            ):
                raise EntityNotFoundException("User", user_id, "User not found")

        await with_transaction(self._database, body, "dismiss_setup")
        logger.info(
            "List setup dismissed",
            extra={"user_id": user_id, "dismissed_until": dismissed_until.isoformat()},
        )
        return dismissed_until
