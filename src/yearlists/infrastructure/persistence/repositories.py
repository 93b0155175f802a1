"""Repository implementations for lists, groups, items, albums, year locks and users."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import Select, case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from yearlists.domain.entities import ListRecord, PreviousMain
from yearlists.domain.exceptions import ValidationError
from yearlists.domain.value_objects import (
    DEFAULT_MAX_YEAR,
    DEFAULT_MIN_YEAR,
    ByAlbum,
    ByItem,
    ItemKey,
    new_external_id,
    validate_year,
)

from .models import (
    AlbumModel,
    ListGroupModel,
    ListItemModel,
    ListModel,
    UserModel,
    YearLockModel,
    utc_now,
)

logger = logging.getLogger(__name__)

UNCATEGORIZED_GROUP_NAME = "Uncategorized"


def _effective_year_column() -> Any:
    """SQL expression for a list's effective year (own year, else group year)."""
    return func.coalesce(ListModel.year, ListGroupModel.year)


def _to_record(
    model: ListModel,
    group_external_id: str | None,
    group_name: str | None,
    group_year: int | None,
) -> ListRecord:
    return ListRecord(
        id=model.id,
        external_id=model.external_id,
        user_id=model.user_id,
        name=model.name,
        year=model.year,
        is_main=bool(model.is_main),
        group_id=model.group_id,
        group_external_id=group_external_id,
        group_name=group_name,
        group_year=group_year,
        sort_order=model.sort_order,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class ListRepository:
    """SQLAlchemy repository for lists.

    Every read joins the owning group so callers always see the effective year.
    """

    # Hey future me, repos never commit! The transaction runner owns the session and commits
    # once the whole unit of work returns. Repos only stage statements on the injected session.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    # populate_existing: list rows are updated with bulk UPDATEs that bypass the identity
    # map, so re-reads in the same transaction must refresh already-loaded instances.
    def _record_stmt(self) -> Select[Any]:
        return (
            select(
                ListModel,
                ListGroupModel.external_id,
                ListGroupModel.name,
                ListGroupModel.year,
            )
            .outerjoin(ListGroupModel, ListModel.group_id == ListGroupModel.id)
            .execution_options(populate_existing=True)
        )

    async def get_owned(self, external_id: str, user_id: str) -> ListRecord | None:
        """Get a list by external id, only if it belongs to the user."""
        stmt = self._record_stmt().where(
            ListModel.external_id == external_id, ListModel.user_id == user_id
        )
        result = await self.session.execute(stmt)
        row = result.first()
        if row is None:
            return None
        return _to_record(*row)

    async def list_for_user(self, user_id: str) -> list[ListRecord]:
        """All of a user's lists with group info, in display order."""
        stmt = (
            self._record_stmt()
            .where(ListModel.user_id == user_id)
            .order_by(ListModel.sort_order, ListModel.id)
        )
        result = await self.session.execute(stmt)
        return [_to_record(*row) for row in result.all()]

    async def summaries_with_counts(
        self, user_id: str
    ) -> list[tuple[ListRecord, int]]:
        """All of a user's lists with their item counts, in one grouped query."""
        item_count = func.count(ListItemModel.id)
        stmt = (
            select(
                ListModel,
                ListGroupModel.external_id,
                ListGroupModel.name,
                ListGroupModel.year,
                item_count,
            )
            .outerjoin(ListGroupModel, ListModel.group_id == ListGroupModel.id)
            .outerjoin(ListItemModel, ListItemModel.list_id == ListModel.id)
            .where(ListModel.user_id == user_id)
            .group_by(
                ListModel.id,
                ListGroupModel.external_id,
                ListGroupModel.name,
                ListGroupModel.year,
            )
            .order_by(ListModel.sort_order, ListModel.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [(_to_record(m, gx, gn, gy), int(count)) for m, gx, gn, gy, count in result.all()]

    async def name_exists(
        self,
        user_id: str,
        name: str,
        group_id: int | None,
        exclude_list_id: int | None = None,
    ) -> bool:
        """Check for a list with exactly this name (case-sensitive) in a group."""
        stmt = select(ListModel.id).where(
            ListModel.user_id == user_id,
            ListModel.name == name,
            (
                ListModel.group_id == group_id
                if group_id is not None
                else ListModel.group_id.is_(None)
            ),
        )
        if exclude_list_id is not None:
            stmt = stmt.where(ListModel.id != exclude_list_id)
        result = await self.session.execute(stmt.limit(1))
        return result.first() is not None

    async def add(
        self,
        user_id: str,
        name: str,
        year: int | None,
        group_id: int | None,
        sort_order: int,
        timestamp: datetime,
    ) -> ListModel:
        """Insert a new (non-main) list and flush so its serial id is known."""
        model = ListModel(
            external_id=new_external_id(),
            user_id=user_id,
            name=name,
            year=year,
            group_id=group_id,
            is_main=False,
            sort_order=sort_order,
            created_at=timestamp,
            updated_at=timestamp,
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def update_fields(self, list_id: int, **values: Any) -> None:
        """Write the given columns on one list and bump updated_at."""
        values.setdefault("updated_at", utc_now())
        await self.session.execute(
            update(ListModel)
            .where(ListModel.id == list_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def touch(self, list_id: int, timestamp: datetime) -> None:
        """Bump updated_at after an item-level change."""
        await self.update_fields(list_id, updated_at=timestamp)

    async def set_main(self, list_id: int, is_main: bool) -> None:
        await self.update_fields(list_id, is_main=is_main)

    def _ids_with_effective_year(self, user_id: str, year: int) -> Select[Any]:
        return (
            select(ListModel.id)
            .outerjoin(ListGroupModel, ListModel.group_id == ListGroupModel.id)
            .where(ListModel.user_id == user_id, _effective_year_column() == year)
            .correlate(None)
        )

    async def find_mains_for_year(
        self, user_id: str, year: int, exclude_list_id: int | None = None
    ) -> list[PreviousMain]:
        """Lists currently flagged main for the user's effective year."""
        stmt = (
            select(ListModel.external_id, ListModel.name)
            .outerjoin(ListGroupModel, ListModel.group_id == ListGroupModel.id)
            .where(
                ListModel.user_id == user_id,
                ListModel.is_main.is_(True),
                _effective_year_column() == year,
            )
            .order_by(ListModel.id)
        )
        if exclude_list_id is not None:
            stmt = stmt.where(ListModel.id != exclude_list_id)
        result = await self.session.execute(stmt)
        return [PreviousMain(list_id=ext, name=name) for ext, name in result.all()]

    # Hey future me - this clears EVERY list of the effective year, not just the one we know
    # is main. If drift ever produced two mains, the next toggle heals it.
    async def clear_main_for_year(
        self, user_id: str, year: int, exclude_list_id: int | None = None
    ) -> int:
        """Clear is_main on all of a user's lists with the given effective year.

        Returns:
            Number of rows that were main before the update
        """
        ids = self._ids_with_effective_year(user_id, year)
        if exclude_list_id is not None:
            ids = ids.where(ListModel.id != exclude_list_id)
        result = await self.session.execute(
            update(ListModel)
            .where(
                ListModel.id.in_(ids),
                ListModel.is_main.is_(True),
            )
            .values(is_main=False, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def delete(self, list_id: int) -> None:
        """Delete a list row. Items must already be gone (or cascade)."""
        await self.session.execute(delete(ListModel).where(ListModel.id == list_id))


class GroupRepository:
    """SQLAlchemy repository for list groups and the auto-group helpers."""

    def __init__(
        self,
        session: AsyncSession,
        uncategorized_name: str = UNCATEGORIZED_GROUP_NAME,
        min_year: int = DEFAULT_MIN_YEAR,
        max_year: int = DEFAULT_MAX_YEAR,
    ) -> None:
        """Initialize repository with session and group naming rules."""
        self.session = session
        self.uncategorized_name = uncategorized_name
        self.min_year = min_year
        self.max_year = max_year

    async def get(self, group_id: int) -> ListGroupModel | None:
        return await self.session.get(ListGroupModel, group_id)

    async def get_owned(self, user_id: str, external_id: str) -> ListGroupModel | None:
        """Get a group by external id, only if it belongs to the user."""
        result = await self.session.execute(
            select(ListGroupModel).where(
                ListGroupModel.external_id == external_id,
                ListGroupModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def _next_group_sort_order(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.max(ListGroupModel.sort_order), -1) + 1).where(
                ListGroupModel.user_id == user_id
            )
        )
        return int(result.scalar_one())

    async def next_list_sort_order(self, group_id: int | None) -> int:
        """Sort order that appends a list at the end of a group."""
        stmt = select(func.coalesce(func.max(ListModel.sort_order), -1) + 1)
        if group_id is None:
            stmt = stmt.where(ListModel.group_id.is_(None))
        else:
            stmt = stmt.where(ListModel.group_id == group_id)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def _create(self, user_id: str, name: str, year: int | None) -> ListGroupModel:
        model = ListGroupModel(
            external_id=new_external_id(),
            user_id=user_id,
            name=name,
            year=year,
            sort_order=await self._next_group_sort_order(user_id),
        )
        # Savepoint so a losing insert leaves the caller's transaction usable
        async with self.session.begin_nested():
            self.session.add(model)
            await self.session.flush()
        logger.debug(
            "Created auto group",
            extra={"user_id": user_id, "group_name": name, "year": year},
        )
        return model

    async def _find_or_create(
        self,
        lookup: Callable[[], Awaitable[int | None]],
        user_id: str,
        name: str,
        year: int | None,
    ) -> int:
        group_id = await lookup()
        if group_id is not None:
            return group_id
        try:
            return (await self._create(user_id, name, year)).id
        except IntegrityError:
            # A concurrent request created the same auto group after our lookup
            group_id = await lookup()
            if group_id is None:
                raise
            logger.debug(
                "Reused concurrently created auto group",
                extra={"user_id": user_id, "group_name": name, "year": year},
            )
            return group_id

    async def _year_group_id(self, user_id: str, year: int) -> int | None:
        result = await self.session.execute(
            select(ListGroupModel.id).where(
                ListGroupModel.user_id == user_id, ListGroupModel.year == year
            )
        )
        return result.scalar_one_or_none()

    async def _uncategorized_group_id(self, user_id: str) -> int | None:
        result = await self.session.execute(
            select(ListGroupModel.id).where(
                ListGroupModel.user_id == user_id,
                ListGroupModel.name == self.uncategorized_name,
                ListGroupModel.year.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def find_or_create_year_group(
        self, user_id: str, year: int | str
    ) -> tuple[int, int]:
        """Find the user's group for a year, creating it at the end if missing.

        Args:
            user_id: Owner of the group
            year: Year as int or numeric string

        Returns:
            Tuple of (group serial id, validated year)

        Raises:
            ValidationError: If the year is missing or out of range
        """
        valid_year = validate_year(year, self.min_year, self.max_year)
        if valid_year is None:
            raise ValidationError("Year is required")

        group_id = await self._find_or_create(
            lambda: self._year_group_id(user_id, valid_year),
            user_id,
            str(valid_year),
            valid_year,
        )
        return group_id, valid_year

    async def find_or_create_uncategorized_group(self, user_id: str) -> int:
        """Find or create the user's yearless catch-all group."""
        return await self._find_or_create(
            lambda: self._uncategorized_group_id(user_id),
            user_id,
            self.uncategorized_name,
            None,
        )

    def is_auto_group(self, group: ListGroupModel) -> bool:
        """Year-groups and the Uncategorized group are auto-managed."""
        return group.year is not None or group.name == self.uncategorized_name

    async def delete_group_if_empty_auto_group(self, group_id: int | None) -> bool:
        """Delete an auto-managed group once it holds no lists.

        User-created collections are never touched.

        Returns:
            True if the group was deleted
        """
        if group_id is None:
            return False

        result = await self.session.execute(
            select(func.count(ListModel.id)).where(ListModel.group_id == group_id)
        )
        if int(result.scalar_one()) > 0:
            return False

        group = await self.get(group_id)
        if group is None or not self.is_auto_group(group):
            return False

        await self.session.execute(
            delete(ListGroupModel).where(ListGroupModel.id == group_id)
        )
        logger.debug(
            "Deleted empty auto group",
            extra={"group_id": group_id, "group_name": group.name},
        )
        return True


class ListItemRepository:
    """Set-oriented primitives over list_items.

    Each method issues a single statement regardless of how many rows it touches.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def max_position(self, list_id: int) -> int:
        """Highest position in a list, 0 when the list is empty."""
        result = await self.session.execute(
            select(func.coalesce(func.max(ListItemModel.position), 0)).where(
                ListItemModel.list_id == list_id
            )
        )
        return int(result.scalar_one())

    async def existing_album_ids(self, list_id: int, album_ids: Iterable[str]) -> set[str]:
        """Which of the given album ids the list already holds."""
        ids = list(set(album_ids))
        if not ids:
            return set()
        result = await self.session.execute(
            select(ListItemModel.album_id).where(
                ListItemModel.list_id == list_id, ListItemModel.album_id.in_(ids)
            )
        )
        return set(result.scalars().all())

    async def bulk_insert(self, rows: Sequence[dict[str, Any]]) -> int:
        """Insert many items with one executemany round trip.

        Each row needs list_id, album_id and position; external_id, comments,
        track picks and timestamps are optional.
        """
        if not rows:
            return 0
        now = utc_now()
        prepared = [
            {
                "external_id": row.get("external_id") or new_external_id(),
                "list_id": row["list_id"],
                "album_id": row["album_id"],
                "position": row["position"],
                "comments": row.get("comments"),
                "primary_track": row.get("primary_track"),
                "secondary_track": row.get("secondary_track"),
                "created_at": row.get("created_at") or now,
                "updated_at": row.get("updated_at") or now,
            }
            for row in rows
        ]
        await self.session.execute(ListItemModel.__table__.insert(), prepared)
        return len(prepared)

    async def bulk_remove(self, list_id: int, album_ids: Iterable[str] | None) -> int:
        """Delete the items holding any of the given album ids.

        Returns:
            Number of items removed (0 for empty or missing input)
        """
        ids = [a for a in (album_ids or []) if a]
        if not ids:
            return 0
        result = await self.session.execute(
            delete(ListItemModel)
            .where(ListItemModel.list_id == list_id, ListItemModel.album_id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]

    # Hey future me - one UPDATE ... SET position = CASE key WHEN ... per addressing mode.
    # Keys that match nothing simply don't match the WHERE, which is how client-side drift
    # (an item removed in another tab) is tolerated without an error.
    async def bulk_reposition(
        self,
        list_id: int,
        moves: Iterable[tuple[ItemKey, int]],
        timestamp: datetime | None = None,
    ) -> int:
        """Set positions for many items at once.

        Args:
            list_id: Serial id of the list
            moves: (ByAlbum | ByItem, new position) pairs; later pairs win on repeated keys
            timestamp: updated_at for touched rows

        Returns:
            Number of rows whose position was written
        """
        by_album: dict[str, int] = {}
        by_item: dict[str, int] = {}
        for key, position in moves:
            if isinstance(key, ByAlbum):
                by_album[key.album_id] = position
            elif isinstance(key, ByItem):
                by_item[key.item_id] = position

        ts = timestamp or utc_now()
        matched = 0
        for column, mapping in (
            (ListItemModel.album_id, by_album),
            (ListItemModel.external_id, by_item),
        ):
            if not mapping:
                continue
            result = await self.session.execute(
                update(ListItemModel)
                .where(ListItemModel.list_id == list_id, column.in_(list(mapping)))
                .values(position=case(mapping, value=column), updated_at=ts)
                .execution_options(synchronize_session=False)
            )
            matched += result.rowcount  # type: ignore[attr-defined]
        return matched

    async def delete_all(self, list_id: int) -> int:
        result = await self.session.execute(
            delete(ListItemModel)
            .where(ListItemModel.list_id == list_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def update_comment(
        self,
        list_id: int,
        key: ItemKey,
        comment: str | None,
        timestamp: datetime,
    ) -> bool:
        """Set the comment on one item. Returns False if nothing matched."""
        column = (
            ListItemModel.album_id if isinstance(key, ByAlbum) else ListItemModel.external_id
        )
        value = key.album_id if isinstance(key, ByAlbum) else key.item_id
        result = await self.session.execute(
            update(ListItemModel)
            .where(ListItemModel.list_id == list_id, column == value)
            .values(comments=comment, updated_at=timestamp)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def with_album_data(
        self, list_id: int
    ) -> list[tuple[ListItemModel, AlbumModel | None]]:
        """Items of one list joined with their albums, in rank order."""
        stmt = (
            select(ListItemModel, AlbumModel)
            .outerjoin(AlbumModel, ListItemModel.album_id == AlbumModel.album_id)
            .where(ListItemModel.list_id == list_id)
            .order_by(ListItemModel.position, ListItemModel.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [(item, album) for item, album in result.all()]

    async def all_for_user_with_album_data(
        self, user_id: str
    ) -> list[tuple[str, ListItemModel, AlbumModel | None]]:
        """Every item of every list a user owns, as (list external id, item, album)."""
        stmt = (
            select(ListModel.external_id, ListItemModel, AlbumModel)
            .join(ListItemModel, ListItemModel.list_id == ListModel.id)
            .outerjoin(AlbumModel, ListItemModel.album_id == AlbumModel.album_id)
            .where(ListModel.user_id == user_id)
            .order_by(ListModel.id, ListItemModel.position, ListItemModel.id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [(ext, item, album) for ext, item, album in result.all()]


class AlbumRepository:
    """SQLAlchemy repository for canonical album records."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get(self, album_id: str) -> AlbumModel | None:
        return await self.session.get(AlbumModel, album_id)

    async def get_many(self, album_ids: Iterable[str]) -> list[AlbumModel]:
        ids = list(set(album_ids))
        if not ids:
            return []
        result = await self.session.execute(
            select(AlbumModel).where(AlbumModel.album_id.in_(ids))
        )
        return list(result.scalars().all())

    async def find_by_normalized(
        self, artist_normalized: str, album_normalized: str
    ) -> AlbumModel | None:
        """Oldest album whose normalized artist and title match."""
        result = await self.session.execute(
            select(AlbumModel)
            .where(
                AlbumModel.artist_normalized == artist_normalized,
                AlbumModel.album_normalized == album_normalized,
            )
            .order_by(AlbumModel.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_many_by_normalized(
        self, pairs: Iterable[tuple[str, str]]
    ) -> dict[tuple[str, str], AlbumModel]:
        """Batch lookup by normalized (artist, album) pairs; oldest record wins."""
        wanted = set(pairs)
        if not wanted:
            return {}
        artists = {artist for artist, _ in wanted}
        albums = {album for _, album in wanted}
        result = await self.session.execute(
            select(AlbumModel)
            .where(
                AlbumModel.artist_normalized.in_(sorted(artists)),
                AlbumModel.album_normalized.in_(sorted(albums)),
            )
            .order_by(AlbumModel.created_at)
        )
        found: dict[tuple[str, str], AlbumModel] = {}
        for model in result.scalars().all():
            pair = (model.artist_normalized, model.album_normalized)
            if pair in wanted and pair not in found:
                found[pair] = model
        return found

    async def add(self, model: AlbumModel) -> None:
        self.session.add(model)
        await self.session.flush()


class YearLockRepository:
    """Reads and writes the year_locks table."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def is_locked(self, year: int | None) -> bool:
        if year is None:
            return False
        result = await self.session.execute(
            select(YearLockModel.locked).where(YearLockModel.year == year)
        )
        return bool(result.scalar_one_or_none())

    # One-directional on purpose: there is no unlock_year().
    async def lock_year(self, year: int, locked_at: datetime | None = None) -> None:
        """Mark a year's results as revealed."""
        model = await self.session.get(YearLockModel, year)
        if model is None:
            model = YearLockModel(year=year)
            self.session.add(model)
        model.locked = True
        model.locked_at = locked_at or utc_now()
        await self.session.flush()
        logger.info("Year locked", extra={"year": year})

    async def locked_years(self) -> list[int]:
        result = await self.session.execute(
            select(YearLockModel.year)
            .where(YearLockModel.locked.is_(True))
            .order_by(YearLockModel.year)
        )
        return list(result.scalars().all())


class UserRepository:
    """The user columns the list core reads and writes."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get(self, user_id: str) -> UserModel | None:
        return await self.session.get(UserModel, user_id)

    async def add(
        self, user_id: str, username: str, lastfm_username: str | None = None
    ) -> UserModel:
        model = UserModel(id=user_id, username=username, lastfm_username=lastfm_username)
        self.session.add(model)
        await self.session.flush()
        return model

    async def set_setup_dismissed_until(
        self, user_id: str, dismissed_until: datetime
    ) -> bool:
        result = await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(list_setup_dismissed_until=dismissed_until)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0  # type: ignore[attr-defined]
