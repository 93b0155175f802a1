"""Default Album Identity Resolver: canonical album records keyed by normalized names."""

import logging
import re
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from yearlists.domain.entities import AlbumPayload, AlbumUpsertResult
from yearlists.domain.ports import IAlbumIdentityResolver
from yearlists.infrastructure.persistence.models import AlbumModel
from yearlists.infrastructure.persistence.repositories import AlbumRepository

logger = logging.getLogger(__name__)

INTERNAL_ID_PREFIX = "internal-"

_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile("[–—]")
_SINGLE_QUOTES = re.compile("[‘’`]")
_DOUBLE_QUOTES = re.compile("[“”]")


def sanitize_for_storage(value: str | None) -> str:
    """Fold typographic variants so different sources store the same text.

    "…and Oceans" becomes "...and Oceans", en/em dashes become "-", smart
    quotes become straight quotes and runs of whitespace collapse to one space.
    Diacritics are kept.
    """
    if not value:
        return ""
    text = str(value).strip().replace("…", "...")
    text = _DASHES.sub("-", text)
    text = _SINGLE_QUOTES.sub("'", text)
    text = _DOUBLE_QUOTES.sub('"', text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_for_lookup(value: str | None) -> str:
    """Sanitized and lowercased, used as the canonical match key."""
    return sanitize_for_storage(value).lower()


def generate_internal_album_id() -> str:
    return f"{INTERNAL_ID_PREFIX}{uuid.uuid4()}"


# Hey future me - "fill, never overwrite": a second submission of the same album may bring
# a release date or track list the first one lacked, but it never replaces what's stored.
# Other users' lists point at the same record.
def _fill_missing(model: AlbumModel, album: AlbumPayload, timestamp: datetime) -> bool:
    changed = False
    for field_name in ("release_date", "country", "genre_1", "genre_2", "tracks"):
        incoming = getattr(album, field_name)
        if incoming and not getattr(model, field_name):
            setattr(model, field_name, incoming)
            changed = True
    if changed:
        model.updated_at = timestamp
    return changed


class CanonicalAlbumResolver(IAlbumIdentityResolver):
    """Resolves raw payloads to one album record per normalized artist + title.

    Lookup order: an explicit album_id that already exists, then the
    normalized artist/title pair, else a new record with the supplied
    album_id or a generated internal id.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._albums = AlbumRepository(session)

    async def upsert_album_record(
        self, album: AlbumPayload, timestamp: datetime
    ) -> str:
        model, _ = await self._resolve_one(album, timestamp, {})
        return model.album_id

    async def batch_upsert_album_records(
        self, albums: list[AlbumPayload], timestamp: datetime
    ) -> dict[str, AlbumUpsertResult]:
        """Resolve many payloads with two lookups up front.

        Returns:
            Mapping of AlbumPayload.key to the resolved album; payloads sharing
            a key resolve once.
        """
        results: dict[str, AlbumUpsertResult] = {}
        pending = [a for a in albums if a is not None]
        if not pending:
            return results

        by_id = {
            m.album_id: m
            for m in await self._albums.get_many(a.album_id for a in pending if a.album_id)
        }
        by_name = await self._albums.find_many_by_normalized(
            (normalize_for_lookup(a.artist), normalize_for_lookup(a.album)) for a in pending
        )
        # Records created earlier in this batch count as existing for later entries
        cache: dict[tuple[str, str], AlbumModel] = dict(by_name)

        for album in pending:
            if album.key in results:
                continue
            existing = by_id.get(album.album_id) if album.album_id else None
            model, was_inserted = await self._resolve_one(
                album, timestamp, cache, existing=existing, looked_up=True
            )
            by_id[model.album_id] = model
            results[album.key] = AlbumUpsertResult(
                album_id=model.album_id, was_inserted=was_inserted
            )

        logger.debug(
            "Batch resolved albums",
            extra={
                "album_count": len(results),
                "inserted": sum(1 for r in results.values() if r.was_inserted),
            },
        )
        return results

    async def _resolve_one(
        self,
        album: AlbumPayload,
        timestamp: datetime,
        cache: dict[tuple[str, str], AlbumModel],
        existing: AlbumModel | None = None,
        looked_up: bool = False,
    ) -> tuple[AlbumModel, bool]:
        artist_norm = normalize_for_lookup(album.artist)
        album_norm = normalize_for_lookup(album.album)
        pair = (artist_norm, album_norm)

        if existing is None and album.album_id and not looked_up:
            existing = await self._albums.get(album.album_id)
        if existing is None and (artist_norm or album_norm):
            existing = cache.get(pair)
            if existing is None and not looked_up:
                existing = await self._albums.find_by_normalized(artist_norm, album_norm)

        if existing is not None:
            _fill_missing(existing, album, timestamp)
            return existing, False

        model = AlbumModel(
            album_id=album.album_id or generate_internal_album_id(),
            artist=sanitize_for_storage(album.artist),
            album=sanitize_for_storage(album.album),
            artist_normalized=artist_norm,
            album_normalized=album_norm,
            release_date=album.release_date,
            country=album.country,
            genre_1=album.genre_1,
            genre_2=album.genre_2,
            tracks=album.tracks,
            created_at=timestamp,
            updated_at=timestamp,
        )
        await self._albums.add(model)
        cache[pair] = model
        logger.debug(
            "Inserted canonical album",
            extra={
                "album_id": model.album_id,
                "has_external_id": bool(album.album_id),
            },
        )
        return model, True
