"""List service: create, edit, reorder, toggle main status and delete ranked lists.

Hey future me - every mutating method here follows the same shape:

    async def body(session):
        lst = await self._load_owned(session, list_id, user_id)      # 404 if missing/foreign
        await guard.ensure_can_mutate(lst.effective_year, ...)        # 403 if locked
        ... writes ...
    return await with_transaction(self._database, body)

The lock check runs INSIDE the transaction, at the top of the body, before any write.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from yearlists.application.services.album_resolver import CanonicalAlbumResolver
from yearlists.application.services.list_items import ListItemMutator
from yearlists.application.services.playcount_refresh import PlaycountRefreshScheduler
from yearlists.application.services.year_lock_guard import YearLockGuard
from yearlists.config import Settings, get_settings
from yearlists.domain.entities import (
    UNSET,
    AlbumPayload,
    CreateListRequest,
    CreateListResult,
    IncrementalUpdateRequest,
    IncrementalUpdateResult,
    ItemView,
    ListDetail,
    ListRecord,
    ListSummary,
    ReorderResult,
    ReplaceItemsResult,
    ToggleMainResult,
    UpdateListRequest,
    UpdateListResult,
)
from yearlists.domain.exceptions import (
    DuplicateEntityException,
    EntityNotFoundException,
    MainListProtectedError,
    ValidationError,
)
from yearlists.domain.ports import IAlbumIdentityResolver, IYearLockGuard
from yearlists.domain.rules import MutationScope
from yearlists.domain.value_objects import (
    ByAlbum,
    ByItem,
    ItemKey,
    normalize_comment,
    parse_order_entry,
    validate_year,
)
from yearlists.infrastructure.persistence.database import Database
from yearlists.infrastructure.persistence.models import (
    AlbumModel,
    ListItemModel,
    utc_now,
)
from yearlists.infrastructure.persistence.repositories import (
    GroupRepository,
    ListItemRepository,
    ListRepository,
    UserRepository,
)
from yearlists.infrastructure.persistence.transaction import with_transaction

logger = logging.getLogger(__name__)

DUPLICATE_NAME_MESSAGE = "A list with this name already exists in this category"

AlbumResolverFactory = Callable[[AsyncSession], IAlbumIdentityResolver]
YearLockGuardFactory = Callable[[AsyncSession], IYearLockGuard]


def _item_view(
    item: ListItemModel, album: AlbumModel | None, rank: int | None = None
) -> ItemView:
    return ItemView(
        id=item.external_id,
        album_id=item.album_id,
        position=item.position,
        artist=(album.artist if album else "") or "",
        album=(album.album if album else "") or "",
        release_date=(album.release_date if album else "") or "",
        country=(album.country if album else "") or "",
        genre_1=(album.genre_1 if album else "") or "",
        genre_2=(album.genre_2 if album else "") or "",
        tracks=album.tracks if album else None,
        comments=item.comments or "",
        primary_track=item.primary_track or None,
        secondary_track=item.secondary_track or None,
        rank=rank,
    )


def _require_name(name: Any, message: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(message)
    return name.strip()


class ListService:
    """Transactional operations on a user's ranked lists.

    Collaborators are injected as factories taking the transaction's session,
    so lock reads and album upserts share the unit of work they guard.
    """

    def __init__(
        self,
        database: Database,
        settings: Settings | None = None,
        album_resolver_factory: AlbumResolverFactory = CanonicalAlbumResolver,
        year_lock_guard_factory: YearLockGuardFactory = YearLockGuard,
        playcount_scheduler: PlaycountRefreshScheduler | None = None,
    ) -> None:
        self._database = database
        self._settings = settings or get_settings()
        self._album_resolver_factory = album_resolver_factory
        self._year_lock_guard_factory = year_lock_guard_factory
        self._playcount_scheduler = playcount_scheduler

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _groups(self, session: AsyncSession) -> GroupRepository:
        lists_cfg = self._settings.lists
        return GroupRepository(
            session,
            uncategorized_name=lists_cfg.uncategorized_group_name,
            min_year=lists_cfg.min_year,
            max_year=lists_cfg.max_year,
        )

    def _mutator(self, session: AsyncSession) -> ListItemMutator:
        return ListItemMutator(session, self._album_resolver_factory(session))

    async def _load_owned(
        self, session: AsyncSession, list_id: str, user_id: str
    ) -> ListRecord:
        lst = await ListRepository(session).get_owned(list_id, user_id)
        if lst is None:
            raise EntityNotFoundException("List", list_id, "List not found")
        return lst

    async def _load_for_item_edit(
        self, session: AsyncSession, list_id: str, user_id: str, action: str
    ) -> ListRecord:
        """Load an owned list and apply the main-list lock precondition."""
        lst = await self._load_owned(session, list_id, user_id)
        guard = self._year_lock_guard_factory(session)
        await guard.ensure_can_mutate(lst.effective_year, lst.is_main, action)
        return lst

    # =========================================================================
    # Read views
    # =========================================================================

    async def find_list_by_id(self, list_id: str, user_id: str) -> ListRecord | None:
        """Find a list by external id, joined with its group. None if absent or foreign."""
        async with self._database.session_scope() as session:
            return await ListRepository(session).get_owned(list_id, user_id)

    async def get_all_lists(
        self, user_id: str, full: bool = False
    ) -> dict[str, ListSummary] | dict[str, list[ItemView]]:
        """All of a user's lists keyed by external id.

        Args:
            user_id: Owner of the lists
            full: False for metadata with item counts, True for hydrated items

        Returns:
            {list_id: ListSummary} or {list_id: [ItemView, ...]} in position order
        """
        async with self._database.session_scope() as session:
            lists = ListRepository(session)
            if not full:
                return {
                    record.external_id: ListSummary(
                        id=record.external_id,
                        name=record.name,
                        year=record.year,
                        is_main=record.is_main,
                        count=count,
                        group_id=record.group_external_id,
                        sort_order=record.sort_order,
                        created_at=record.created_at,
                        updated_at=record.updated_at,
                    )
                    for record, count in await lists.summaries_with_counts(user_id)
                }

            hydrated: dict[str, list[ItemView]] = {
                record.external_id: [] for record in await lists.list_for_user(user_id)
            }
            rows = await ListItemRepository(session).all_for_user_with_album_data(user_id)
            for list_external_id, item, album in rows:
                hydrated.setdefault(list_external_id, []).append(_item_view(item, album))
            return hydrated

    async def get_list_by_id(self, list_id: str, user_id: str) -> ListDetail:
        """A list with its items in rank order.

        Raises:
            EntityNotFoundException: If the list is absent or not owned by the user
        """
        async with self._database.session_scope() as session:
            lst = await self._load_owned(session, list_id, user_id)
            rows = await ListItemRepository(session).with_album_data(lst.id)
            items = [
                _item_view(item, album, rank=index)
                for index, (item, album) in enumerate(rows, start=1)
            ]
        return ListDetail(list=lst, items=items)

    # =========================================================================
    # Create / update / delete
    # =========================================================================

    async def create_list(
        self, user_id: str, request: CreateListRequest
    ) -> CreateListResult:
        """Create a list in an explicit group, a year-group or the Uncategorized group.

        Raises:
            ValidationError: Empty name or invalid year (400)
            EntityNotFoundException: group_id not owned by the user (404)
            DuplicateEntityException: Name already used in the target group (409)
        """
        name = _require_name(request.name, "List name is required")
        albums = list(request.albums or [])
        timestamp = utc_now()

        async def body(session: AsyncSession) -> CreateListResult:
            groups = self._groups(session)

            if request.group_id:
                group = await groups.get_owned(user_id, request.group_id)
                if group is None:
                    raise EntityNotFoundException("Group", request.group_id, "Group not found")
                group_id, year = group.id, group.year
            elif request.year is not None and request.year != "":
                group_id, year = await groups.find_or_create_year_group(user_id, request.year)
            else:
                group_id, year = await groups.find_or_create_uncategorized_group(user_id), None

            lists = ListRepository(session)
            if await lists.name_exists(user_id, name, group_id):
                raise DuplicateEntityException("List", name, DUPLICATE_NAME_MESSAGE)

            model = await lists.add(
                user_id=user_id,
                name=name,
                year=year,
                group_id=group_id,
                sort_order=await groups.next_list_sort_order(group_id),
                timestamp=timestamp,
            )
            count = await self._mutator(session).insert_in_order(model.id, albums, timestamp)
            group = await groups.get(group_id)

            return CreateListResult(
                list_id=model.external_id,
                name=name,
                year=year,
                group_id=group.external_id if group else None,
                count=count,
            )

        result = await with_transaction(self._database, body, "create_list")
        logger.info(
            "List created",
            extra={
                "user_id": user_id,
                "list_id": result.list_id,
                "list_name": name,
                "year": result.year,
                "album_count": result.count,
            },
        )
        return result

    async def update_list_metadata(
        self, list_id: str, user_id: str, request: UpdateListRequest
    ) -> UpdateListResult:
        """Rename a list, change its year or move it to another group.

        A group_id wins over year: the list takes the group's year. A plain year
        change keeps the group. Both the current and the target effective year
        must pass the main-list lock. A main list whose effective year changes
        loses its main flag.

        Raises:
            ValidationError: group_id=None, empty name, bad year or nothing to update (400)
            EntityNotFoundException: List or group not found (404)
            YearLockedError: Current or target year locks this main list (403)
            DuplicateEntityException: Name taken in the target group (409)
        """

        async def body(session: AsyncSession) -> UpdateListResult:
            lst = await self._load_owned(session, list_id, user_id)
            groups = self._groups(session)
            fields: dict[str, Any] = {}

            target_group_id = lst.group_id
            target_group_year = lst.group_year
            target_year = lst.year

            if request.group_id is not UNSET:
                if request.group_id is None:
                    raise ValidationError("Lists must belong to a category")
                group = await groups.get_owned(user_id, request.group_id)
                if group is None:
                    raise EntityNotFoundException("Group", request.group_id, "Group not found")
                target_group_id = group.id
                target_group_year = group.year
                target_year = group.year
                fields["group_id"] = target_group_id
                fields["year"] = target_year
            elif request.year is not UNSET:
                lists_cfg = self._settings.lists
                target_year = validate_year(request.year, lists_cfg.min_year, lists_cfg.max_year)
                fields["year"] = target_year

            current_effective = lst.effective_year
            target_effective = target_year if target_year is not None else target_group_year

            guard = self._year_lock_guard_factory(session)
            await guard.ensure_can_mutate(current_effective, lst.is_main, "update list")
            if target_effective != current_effective:
                await guard.ensure_can_mutate(target_effective, lst.is_main, "update list")

            moving = target_group_id != lst.group_id
            new_name = lst.name
            if request.name is not UNSET:
                new_name = _require_name(request.name, "List name cannot be empty")
                fields["name"] = new_name

            if (new_name != lst.name or moving) and await ListRepository(session).name_exists(
                user_id, new_name, target_group_id, exclude_list_id=lst.id
            ):
                raise DuplicateEntityException("List", new_name, DUPLICATE_NAME_MESSAGE)

            if not fields:
                raise ValidationError("No updates provided")

            if moving:
                fields["sort_order"] = await groups.next_list_sort_order(target_group_id)

            main_cleared = lst.is_main and target_effective != current_effective
            if main_cleared:
                fields["is_main"] = False

            await ListRepository(session).update_fields(lst.id, **fields)
            if moving:
                await groups.delete_group_if_empty_auto_group(lst.group_id)

            return UpdateListResult(
                list=lst, target_year=target_effective, main_cleared=main_cleared
            )

        result = await with_transaction(self._database, body, "update_list_metadata")
        logger.info(
            "List updated",
            extra={
                "user_id": user_id,
                "list_id": list_id,
                "year": result.target_year,
                "main_cleared": result.main_cleared,
            },
        )
        return result

    async def delete_list(self, list_id: str, user_id: str) -> ListRecord:
        """Delete a non-main list and its items; drop its auto-group if now empty.

        Raises:
            EntityNotFoundException: List not found (404)
            MainListProtectedError: The list is main (403)
        """

        async def body(session: AsyncSession) -> ListRecord:
            lst = await self._load_owned(session, list_id, user_id)
            if lst.is_main:
                raise MainListProtectedError()

            await ListItemRepository(session).delete_all(lst.id)
            await ListRepository(session).delete(lst.id)
            await self._groups(session).delete_group_if_empty_auto_group(lst.group_id)
            return lst

        deleted = await with_transaction(self._database, body, "delete_list")
        logger.info(
            "List deleted",
            extra={"user_id": user_id, "list_id": list_id, "list_name": deleted.name},
        )
        return deleted

    # =========================================================================
    # Items
    # =========================================================================

    async def replace_list_items(
        self, list_id: str, user_id: str, albums: Sequence[AlbumPayload]
    ) -> ReplaceItemsResult:
        """Replace every item of a list with `albums` at positions 1..N."""
        timestamp = utc_now()

        async def body(session: AsyncSession) -> ReplaceItemsResult:
            lst = await self._load_for_item_edit(session, list_id, user_id, "modify list items")
            count = await self._mutator(session).replace_items(lst, list(albums), timestamp)
            await ListRepository(session).touch(lst.id, timestamp)
            return ReplaceItemsResult(list=lst, count=count)

        result = await with_transaction(self._database, body, "replace_list_items")
        logger.info(
            "List items replaced",
            extra={
                "user_id": user_id,
                "list_id": list_id,
                "list_name": result.list.name,
                "album_count": result.count,
            },
        )
        return result

    # Hey future me - the order remove -> add -> reposition is load-bearing: positions freed
    # by the removal are visible to the max(position)+1 computed for the additions.
    async def incremental_update(
        self, list_id: str, user_id: str, request: IncrementalUpdateRequest
    ) -> IncrementalUpdateResult:
        """Remove, add and reposition items in one transaction.

        Albums already on the list are reported in duplicate_albums and skipped.
        When albums were added and the owner has a linked Last.fm account, a
        background playcount refresh is scheduled after commit.
        """
        timestamp = utc_now()

        async def body(session: AsyncSession) -> tuple[IncrementalUpdateResult, str | None]:
            lst = await self._load_for_item_edit(session, list_id, user_id, "modify list items")
            mutator = self._mutator(session)

            removed = await mutator.remove_items(lst, request.removed)
            added = await mutator.add_items(lst, request.added, timestamp)
            moved = await mutator.apply_position_updates(lst, request.updated, timestamp)
            await ListRepository(session).touch(lst.id, timestamp)

            user = await UserRepository(session).get(user_id)
            result = IncrementalUpdateResult(
                list=lst,
                change_count=removed + added.change_count + moved,
                added_items=added.added_items,
                duplicate_albums=added.duplicate_albums,
            )
            return result, user.lastfm_username if user else None

        result, lastfm_username = await with_transaction(
            self._database, body, "incremental_update"
        )
        logger.info(
            "List incrementally updated",
            extra={
                "user_id": user_id,
                "list_id": list_id,
                "list_name": result.list.name,
                "added": len(request.added or []),
                "removed": len(request.removed or []),
                "updated": len(request.updated or []),
                "total_changes": result.change_count,
                "duplicates": len(result.duplicate_albums),
            },
        )

        if self._playcount_scheduler is not None and result.added_items:
            self._playcount_scheduler.schedule(
                user_id,
                lastfm_username,
                [item.album_id for item in result.added_items],
            )
        return result

    async def reorder_items(
        self, list_id: str, user_id: str, order: Sequence[Any]
    ) -> ReorderResult:
        """Assign positions 1..N following `order`.

        Entries are album ids (str), {"_id": item_id} mappings or ItemKey
        values, freely mixed. Unusable entries are skipped without consuming a
        position; keys that match no item are ignored.
        """
        moves: list[tuple[ItemKey, int]] = []
        for entry in order or []:
            key = parse_order_entry(entry)
            if key is not None:
                moves.append((key, len(moves) + 1))
        timestamp = utc_now()

        async def body(session: AsyncSession) -> ReorderResult:
            lst = await self._load_for_item_edit(session, list_id, user_id, "reorder list items")
            await self._mutator(session).reposition(lst, moves, timestamp)
            await ListRepository(session).touch(lst.id, timestamp)
            return ReorderResult(list=lst, item_count=len(moves))

        result = await with_transaction(self._database, body, "reorder_items")
        logger.info(
            "List reordered",
            extra={
                "user_id": user_id,
                "list_id": list_id,
                "list_name": result.list.name,
                "item_count": result.item_count,
            },
        )
        return result

    async def update_item_comment(
        self, list_id: str, user_id: str, identifier: str, comment: str | None
    ) -> None:
        """Set one item's comment; identifier is tried as album id, then item id.

        Raises:
            EntityNotFoundException: No item matches either way (404)
        """
        normalized = normalize_comment(comment)
        timestamp = utc_now()

        async def body(session: AsyncSession) -> None:
            lst = await self._load_for_item_edit(session, list_id, user_id, "update comment")
            items = ListItemRepository(session)
            for key in (ByAlbum(identifier), ByItem(identifier)):
                if await items.update_comment(lst.id, key, normalized, timestamp):
                    return
            raise EntityNotFoundException("Item", identifier, "Album not found in list")

        await with_transaction(self._database, body, "update_item_comment")
        logger.info(
            "Comment updated",
            extra={"user_id": user_id, "list_id": list_id, "identifier": identifier},
        )

    # =========================================================================
    # Main status
    # =========================================================================

    async def toggle_main_status(
        self, list_id: str, user_id: str, is_main: bool
    ) -> ToggleMainResult:
        """Set or clear the main flag, keeping at most one main list per effective year.

        Setting clears is_main on EVERY list of the user with the same effective
        year, then sets it on this one, in one transaction.

        Raises:
            EntityNotFoundException: List not found (404)
            YearLockedError: The effective year is locked, either direction (403)
            ValidationError: Setting main on a list without an effective year (400)
        """

        async def body(session: AsyncSession) -> ToggleMainResult:
            lst = await self._load_owned(session, list_id, user_id)
            year = lst.effective_year

            guard = self._year_lock_guard_factory(session)
            await guard.ensure_can_mutate(
                year, lst.is_main, "change main status", MutationScope.YEAR
            )

            lists = ListRepository(session)
            if not is_main:
                await lists.set_main(lst.id, False)
                return ToggleMainResult(list=lst, year=year, is_removal=True)

            if year is None:
                raise ValidationError("List must be assigned to a year to be marked as main")

            previous = await lists.find_mains_for_year(user_id, year, exclude_list_id=lst.id)
            await lists.clear_main_for_year(user_id, year)
            await lists.set_main(lst.id, True)
            return ToggleMainResult(
                list=lst, year=year, is_removal=False, previous_main=previous
            )

        result = await with_transaction(self._database, body, "toggle_main_status")
        logger.info(
            "Main status removed" if result.is_removal else "Main status set",
            extra={
                "user_id": user_id,
                "list_id": list_id,
                "year": result.year,
                "previous_main": [p.list_id for p in result.previous_main],
            },
        )
        return result
