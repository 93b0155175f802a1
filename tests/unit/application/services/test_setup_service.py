"""Tests for ListSetupService: setup status, bulk update and dismissal."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

import pytest

from yearlists.application.services import ListService, ListSetupService
from yearlists.domain.entities import (
    AlbumPayload,
    BulkUpdateEntry,
    BulkUpdateEntryResult,
    UpdateListRequest,
)
from yearlists.domain.exceptions import EntityNotFoundException
from yearlists.infrastructure.persistence.database import Database
from yearlists.infrastructure.persistence.models import ensure_utc_aware
from yearlists.infrastructure.persistence.repositories import (
    ListRepository,
    UserRepository,
)

CreateList = Callable[..., Awaitable[str]]
MakeAlbum = Callable[..., AlbumPayload]
LockYear = Callable[[int], Awaitable[None]]


async def _main_names(database: Database, user_id: str, year: int) -> list[str]:
    async with database.session_scope() as session:
        return [m.name for m in await ListRepository(session).find_mains_for_year(user_id, year)]


class TestGetSetupStatus:
    """Test ListSetupService.get_setup_status."""

    async def test_empty_user_needs_nothing(
        self, setup_service: ListSetupService, user_id: str
    ) -> None:
        status = await setup_service.get_setup_status(user_id)
        assert status.needs_setup is False
        assert status.years_summary == []
        assert status.dismissed_until is None

    async def test_year_without_main_until_toggled(
        self,
        setup_service: ListSetupService,
        list_service: ListService,
        create_list: CreateList,
        user_id: str,
        make_album: MakeAlbum,
    ) -> None:
        list_id = await create_list(
            "Top 2024", year=2024, albums=[make_album("A"), make_album("B"), make_album("C")]
        )

        status = await setup_service.get_setup_status(user_id)
        assert status.needs_setup is True
        assert status.years_needing_main == [2024]
        assert status.years_summary[0].has_main is False

        await list_service.toggle_main_status(list_id, user_id, True)

        status = await setup_service.get_setup_status(user_id)
        assert status.needs_setup is False
        assert status.years_needing_main == []
        summary = status.years_summary[0]
        assert (summary.year, summary.has_main) == (2024, True)
        assert [(entry.name, entry.is_main) for entry in summary.lists] == [("Top 2024", True)]

    async def test_lists_without_own_year_are_reported(
        self,
        setup_service: ListSetupService,
        list_service: ListService,
        create_list: CreateList,
        user_id: str,
    ) -> None:
        inherits = await create_list("Inherits", year=2023)
        await create_list("Yearless")
        await list_service.update_list_metadata(inherits, user_id, UpdateListRequest(year=None))
        await list_service.toggle_main_status(inherits, user_id, True)

        status = await setup_service.get_setup_status(user_id)

        assert [ref.name for ref in status.lists_without_year] == ["Inherits"]
        assert status.years_needing_main == []
        assert status.needs_setup is True

    async def test_years_sorted_and_users_isolated(
        self,
        setup_service: ListSetupService,
        create_list: CreateList,
        user_id: str,
        other_user_id: str,
    ) -> None:
        await create_list("B", year=2024)
        await create_list("A", year=2021)
        await create_list("Bob", year=2019, user_id=other_user_id)

        status = await setup_service.get_setup_status(user_id)

        assert [s.year for s in status.years_summary] == [2021, 2024]
        assert status.years_needing_main == [2021, 2024]

    async def test_dismissed_until_from_user_or_argument(
        self, setup_service: ListSetupService, user_id: str
    ) -> None:
        explicit = datetime(2030, 5, 1, tzinfo=UTC)
        assert (await setup_service.get_setup_status(user_id, explicit)).dismissed_until == explicit

        stored = await setup_service.dismiss_setup(user_id)
        status = await setup_service.get_setup_status(user_id)
        assert status.dismissed_until == stored


class TestBulkUpdate:
    """Test ListSetupService.bulk_update."""

    async def test_assigns_years_and_main_per_entry(
        self,
        setup_service: ListSetupService,
        create_list: CreateList,
        user_id: str,
        database: Database,
    ) -> None:
        first = await create_list("First")
        second = await create_list("Second")

        result = await setup_service.bulk_update(
            user_id,
            [
                BulkUpdateEntry(list_id=first, year=2023, is_main=True),
                BulkUpdateEntry(list_id=second, year="2023"),
            ],
        )

        assert result.results == [
            BulkUpdateEntryResult(list_id=first, success=True),
            BulkUpdateEntryResult(list_id=second, success=True),
        ]
        assert result.years_to_recompute == {2023}
        assert await _main_names(database, user_id, 2023) == ["First"]

    async def test_new_main_clears_existing_main(
        self,
        setup_service: ListSetupService,
        list_service: ListService,
        create_list: CreateList,
        user_id: str,
        database: Database,
    ) -> None:
        old_main = await create_list("Old", year=2023)
        new_main = await create_list("New", year=2023)
        await list_service.toggle_main_status(old_main, user_id, True)

        result = await setup_service.bulk_update(
            user_id, [BulkUpdateEntry(list_id=new_main, is_main=True)]
        )

        assert result.results[0].success is True
        assert await _main_names(database, user_id, 2023) == ["New"]

    async def test_two_mains_in_one_batch_keeps_last(
        self,
        setup_service: ListSetupService,
        create_list: CreateList,
        user_id: str,
        database: Database,
    ) -> None:
        a = await create_list("A", year=2023)
        b = await create_list("B", year=2023)

        await setup_service.bulk_update(
            user_id,
            [BulkUpdateEntry(list_id=a, is_main=True), BulkUpdateEntry(list_id=b, is_main=True)],
        )

        assert await _main_names(database, user_id, 2023) == ["B"]

    async def test_failures_are_per_entry(
        self,
        setup_service: ListSetupService,
        create_list: CreateList,
        user_id: str,
        other_user_id: str,
        database: Database,
    ) -> None:
        good = await create_list("Good")
        yearless = await create_list("Yearless")
        theirs = await create_list("Theirs", user_id=other_user_id)

        result = await setup_service.bulk_update(
            user_id,
            [
                BulkUpdateEntry(list_id=None, year=2020),
                BulkUpdateEntry(list_id="0" * 24, year=2020),
                BulkUpdateEntry(list_id=theirs, year=2020),
                BulkUpdateEntry(list_id=good, year="twenty"),
                BulkUpdateEntry(list_id=yearless, is_main=True),
                BulkUpdateEntry(list_id=good, year=2020),
            ],
        )

        assert [(r.success, r.error) for r in result.results] == [
            (False, "Missing listId"),
            (False, "List not found"),
            (False, "List not found"),
            (False, "Invalid year"),
            (False, "List must be assigned to a year to be marked as main"),
            (True, None),
        ]
        assert result.years_to_recompute == set()
        async with database.session_scope() as session:
            record = await ListRepository(session).get_owned(good, user_id)
        assert record.year == 2020

    async def test_locked_years_reject_main_changes(
        self,
        setup_service: ListSetupService,
        list_service: ListService,
        create_list: CreateList,
        user_id: str,
        lock_year: LockYear,
        database: Database,
    ) -> None:
        locked_main = await create_list("Locked main", year=2022)
        locked_other = await create_list("Locked other", year=2022)
        await list_service.toggle_main_status(locked_main, user_id, True)
        await lock_year(2022)

        result = await setup_service.bulk_update(
            user_id,
            [
                BulkUpdateEntry(list_id=locked_main, year=2024),
                BulkUpdateEntry(list_id=locked_other, is_main=True),
                BulkUpdateEntry(list_id=locked_other, year=2021),
            ],
        )

        assert [(r.success, r.error) for r in result.results] == [
            (False, "Cannot update main list: Main list for year 2022 is locked"),
            (False, "Cannot change main status: Year 2022 is locked"),
            (True, None),
        ]
        assert await _main_names(database, user_id, 2022) == ["Locked main"]

    async def test_years_to_recompute_include_old_and_new_years(
        self,
        setup_service: ListSetupService,
        list_service: ListService,
        create_list: CreateList,
        user_id: str,
    ) -> None:
        moving = await create_list("Moving", year=2020)
        await list_service.toggle_main_status(moving, user_id, True)

        result = await setup_service.bulk_update(
            user_id, [BulkUpdateEntry(list_id=moving, year=2021, is_main=True)]
        )

        assert result.results[0].success is True
        assert result.years_to_recompute == {2020, 2021}


class TestDismissSetup:
    async def test_dismiss_stores_snooze(
        self, setup_service: ListSetupService, user_id: str, database: Database
    ) -> None:
        before = datetime.now(UTC)
        dismissed_until = await setup_service.dismiss_setup(user_id)

        assert dismissed_until - before >= timedelta(hours=24) - timedelta(seconds=5)
        async with database.session_scope() as session:
            user = await UserRepository(session).get(user_id)
        assert ensure_utc_aware(user.list_setup_dismissed_until) == dismissed_until

    async def test_unknown_user(self, setup_service: ListSetupService) -> None:
        with pytest.raises(EntityNotFoundException, match="User not found"):
            await setup_service.dismiss_setup("ghost")
