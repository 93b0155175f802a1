"""Bulk add, remove and reposition of list items."""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from yearlists.domain.entities import (
    AddedItem,
    AlbumPayload,
    BulkAddResult,
    DuplicateAlbum,
    ListRecord,
    PositionUpdate,
)
from yearlists.domain.exceptions import DuplicateEntityException
from yearlists.domain.ports import IAlbumIdentityResolver
from yearlists.domain.value_objects import ByAlbum, ItemKey, new_external_id
from yearlists.infrastructure.persistence.repositories import ListItemRepository

logger = logging.getLogger(__name__)


def _item_row(
    list_id: int,
    album_id: str,
    position: int,
    album: AlbumPayload,
    timestamp: datetime,
) -> dict[str, Any]:
    return {
        "external_id": new_external_id(),
        "list_id": list_id,
        "album_id": album_id,
        "position": position,
        "comments": album.comments or None,
        "primary_track": album.primary_track or None,
        "secondary_track": album.secondary_track or None,
        "created_at": timestamp,
        "updated_at": timestamp,
    }


class ListItemMutator:
    """Orchestrates the bulk item primitives for one list inside one transaction."""

    def __init__(self, session: AsyncSession, album_resolver: IAlbumIdentityResolver) -> None:
        self._items = ListItemRepository(session)
        self._resolver = album_resolver

    async def remove_items(self, lst: ListRecord, album_ids: Iterable[str] | None) -> int:
        return await self._items.bulk_remove(lst.id, album_ids)

    # Hey future me - duplicates are REPORTED, not fatal. An album already on the list, or
    # the same album twice in one request (even under different spellings that normalize to
    # the same record), shows up in duplicate_albums and the rest still gets inserted.
    async def add_items(
        self,
        lst: ListRecord,
        albums: Sequence[AlbumPayload | None] | None,
        timestamp: datetime,
    ) -> BulkAddResult:
        """Resolve and append albums in one insert.

        New items go after the current maximum position unless the payload
        carries an explicit position.
        """
        result = BulkAddResult()
        valid = [a for a in (albums or []) if a is not None]
        if not valid:
            return result

        next_position = await self._items.max_position(lst.id) + 1
        resolved = await self._resolver.batch_upsert_album_records(valid, timestamp)
        already_listed = await self._items.existing_album_ids(
            lst.id, (r.album_id for r in resolved.values())
        )

        rows: list[dict[str, Any]] = []
        for album in valid:
            upserted = resolved.get(album.key)
            if upserted is None:
                logger.warning(
                    "Album not found in upsert results",
                    extra={"artist": album.artist, "album": album.album},
                )
                continue

            if upserted.album_id in already_listed:
                result.duplicate_albums.append(
                    DuplicateAlbum(
                        album_id=upserted.album_id,
                        artist=album.artist or "",
                        album=album.album or "",
                    )
                )
                continue

            if album.position is not None:
                position = album.position
            else:
                position = next_position
                next_position += 1

            row = _item_row(lst.id, upserted.album_id, position, album, timestamp)
            rows.append(row)
            already_listed.add(upserted.album_id)
            result.added_items.append(
                AddedItem(album_id=upserted.album_id, item_id=row["external_id"])
            )

        result.change_count = await self._items.bulk_insert(rows)
        if rows:
            logger.debug(
                "Batch insert list items",
                extra={"list_id": lst.external_id, "count": len(rows)},
            )
        return result

    async def reposition(
        self,
        lst: ListRecord,
        moves: Iterable[tuple[ItemKey, int]],
        timestamp: datetime,
    ) -> int:
        return await self._items.bulk_reposition(lst.id, moves, timestamp)

    async def apply_position_updates(
        self,
        lst: ListRecord,
        updates: Iterable[PositionUpdate] | None,
        timestamp: datetime,
    ) -> int:
        """Move existing items (addressed by album id) to the given positions."""
        moves = [
            (ByAlbum(u.album_id), int(u.position))
            for u in (updates or [])
            if u is not None and u.album_id
        ]
        if not moves:
            return 0
        return await self.reposition(lst, moves, timestamp)

    async def replace_items(
        self,
        lst: ListRecord,
        albums: Sequence[AlbumPayload],
        timestamp: datetime,
    ) -> int:
        """Delete every item, then insert `albums` at positions 1..N."""
        await self._items.delete_all(lst.id)
        return await self.insert_in_order(lst.id, albums, timestamp)

    async def insert_in_order(
        self,
        list_id: int,
        albums: Sequence[AlbumPayload],
        timestamp: datetime,
    ) -> int:
        """Insert albums at positions 1..N, resolving each one individually.

        Raises:
            DuplicateEntityException: If two entries resolve to the same album
        """
        rows = []
        seen: set[str] = set()
        for index, album in enumerate(albums, start=1):
            album_id = await self._resolver.upsert_album_record(album, timestamp)
            if album_id in seen:
                raise DuplicateEntityException(
                    "Album",
                    album_id,
                    f"Album appears more than once: {album.artist} - {album.album}",
                )
            seen.add(album_id)
            rows.append(_item_row(list_id, album_id, index, album, timestamp))
        return await self._items.bulk_insert(rows)
