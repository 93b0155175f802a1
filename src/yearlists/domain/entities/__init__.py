"""Domain entities and operation results."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Final


class _Unset:
    """Marker for "field not supplied" where None is a meaningful value."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


# Hey future me - UNSET vs None matters for updates! year=None means "clear the year",
# year=UNSET means "don't touch the year". Same for group_id (where None is rejected).
UNSET: Final = _Unset()


# =============================================================================
# Albums
# =============================================================================


def album_key(artist: str | None, album: str | None) -> str:
    """Key used to match batch resolver results back to raw payloads."""
    return f"{artist or ''}|{album or ''}"


@dataclass
class AlbumPayload:
    """Raw album data as submitted by a client.

    Never stored as-is: the Album Identity Resolver turns it into a stable
    album_id, list items only keep that id plus per-item fields (comments,
    track picks, optional explicit position).
    """

    artist: str
    album: str
    album_id: str | None = None
    release_date: str | None = None
    country: str | None = None
    genre_1: str | None = None
    genre_2: str | None = None
    tracks: list[Any] | None = None
    comments: str | None = None
    primary_track: str | None = None
    secondary_track: str | None = None
    position: int | None = None

    @property
    def key(self) -> str:
        return album_key(self.artist, self.album)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlbumPayload":
        """Build a payload from a client dict, ignoring unknown keys.

        Cover images are fetched asynchronously elsewhere, so cover_image and
        cover_image_format are dropped here.
        """
        position = data.get("position")
        return cls(
            artist=str(data.get("artist") or ""),
            album=str(data.get("album") or ""),
            album_id=data.get("album_id") or None,
            release_date=data.get("release_date") or None,
            country=data.get("country") or None,
            genre_1=data.get("genre_1") or None,
            genre_2=data.get("genre_2") or None,
            tracks=data.get("tracks") or None,
            comments=data.get("comments") or None,
            primary_track=data.get("primary_track") or None,
            secondary_track=data.get("secondary_track") or None,
            position=int(position) if position is not None else None,
        )


@dataclass(frozen=True)
class AlbumUpsertResult:
    """Outcome of resolving one raw album to its canonical record."""

    album_id: str
    was_inserted: bool = False


# =============================================================================
# Lists
# =============================================================================


@dataclass
class ListRecord:
    """A list row joined with its group."""

    id: int
    external_id: str
    user_id: str
    name: str
    year: int | None
    is_main: bool
    group_id: int | None = None
    group_external_id: str | None = None
    group_name: str | None = None
    group_year: int | None = None
    sort_order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def effective_year(self) -> int | None:
        """The list's own year, falling back to its group's year."""
        return self.year if self.year is not None else self.group_year


@dataclass(frozen=True)
class AddedItem:
    """A list item created by a bulk add."""

    album_id: str
    item_id: str


@dataclass(frozen=True)
class DuplicateAlbum:
    """An album rejected by a bulk add because the list already holds it."""

    album_id: str
    artist: str
    album: str


@dataclass
class BulkAddResult:
    """Result of a bulk add."""

    added_items: list[AddedItem] = field(default_factory=list)
    duplicate_albums: list[DuplicateAlbum] = field(default_factory=list)
    change_count: int = 0


@dataclass(frozen=True)
class PositionUpdate:
    """Move an existing item (addressed by album id) to a new position."""

    album_id: str
    position: int


# =============================================================================
# Requests
# =============================================================================


@dataclass
class CreateListRequest:
    """Input for ListService.create_list."""

    name: str
    group_id: str | None = None
    year: int | str | None = None
    albums: list[AlbumPayload] | None = None


@dataclass
class UpdateListRequest:
    """Input for ListService.update_list_metadata. UNSET fields are left alone."""

    name: str | _Unset = UNSET
    year: int | str | None | _Unset = UNSET
    group_id: str | None | _Unset = UNSET


@dataclass
class IncrementalUpdateRequest:
    """Input for ListService.incremental_update. Applied as remove, add, reposition."""

    added: list[AlbumPayload] | None = None
    removed: list[str] | None = None
    updated: list[PositionUpdate] | None = None


@dataclass
class BulkUpdateEntry:
    """One entry of ListSetupService.bulk_update."""

    list_id: str | None
    year: int | str | None | _Unset = UNSET
    is_main: bool | None = None


# =============================================================================
# Results
# =============================================================================


@dataclass
class CreateListResult:
    list_id: str
    name: str
    year: int | None
    group_id: str | None
    count: int


@dataclass
class UpdateListResult:
    # The list as it was before the update
    list: ListRecord
    target_year: int | None
    main_cleared: bool = False


@dataclass
class ReplaceItemsResult:
    list: ListRecord
    count: int


@dataclass
class IncrementalUpdateResult:
    list: ListRecord
    change_count: int
    added_items: list[AddedItem] = field(default_factory=list)
    duplicate_albums: list[DuplicateAlbum] = field(default_factory=list)


@dataclass
class ReorderResult:
    list: ListRecord
    item_count: int


@dataclass(frozen=True)
class PreviousMain:
    """A list that lost its main flag to a toggle."""

    list_id: str
    name: str


@dataclass
class ToggleMainResult:
    list: ListRecord
    year: int | None
    is_removal: bool
    previous_main: list[PreviousMain] = field(default_factory=list)


# =============================================================================
# Read views
# =============================================================================


@dataclass
class ListSummary:
    """Metadata form of a list (no album data)."""

    id: str
    name: str
    year: int | None
    is_main: bool
    count: int
    group_id: str | None
    sort_order: int
    created_at: datetime | None
    updated_at: datetime | None


@dataclass
class ItemView:
    """A list item hydrated with its canonical album data."""

    id: str
    album_id: str
    position: int
    artist: str = ""
    album: str = ""
    release_date: str = ""
    country: str = ""
    genre_1: str = ""
    genre_2: str = ""
    tracks: list[Any] | None = None
    comments: str = ""
    primary_track: str | None = None
    secondary_track: str | None = None
    rank: int | None = None


@dataclass
class ListDetail:
    list: ListRecord
    items: list[ItemView] = field(default_factory=list)


# =============================================================================
# Setup wizard
# =============================================================================


@dataclass(frozen=True)
class ListRef:
    id: str
    name: str


@dataclass(frozen=True)
class YearSummaryList:
    id: str
    name: str
    is_main: bool


@dataclass
class YearSummary:
    year: int
    has_main: bool
    lists: list[YearSummaryList] = field(default_factory=list)


@dataclass
class SetupStatus:
    needs_setup: bool
    lists_without_year: list[ListRef] = field(default_factory=list)
    years_needing_main: list[int] = field(default_factory=list)
    years_summary: list[YearSummary] = field(default_factory=list)
    dismissed_until: datetime | None = None


@dataclass(frozen=True)
class BulkUpdateEntryResult:
    list_id: str | None
    success: bool
    error: str | None = None


@dataclass
class BulkUpdateResult:
    results: list[BulkUpdateEntryResult] = field(default_factory=list)
    years_to_recompute: set[int] = field(default_factory=set)


__all__ = [
    "UNSET",
    "AddedItem",
    "AlbumPayload",
    "AlbumUpsertResult",
    "BulkAddResult",
    "BulkUpdateEntry",
    "BulkUpdateEntryResult",
    "BulkUpdateResult",
    "CreateListRequest",
    "CreateListResult",
    "DuplicateAlbum",
    "IncrementalUpdateRequest",
    "IncrementalUpdateResult",
    "ItemView",
    "ListDetail",
    "ListRecord",
    "ListRef",
    "ListSummary",
    "PositionUpdate",
    "PreviousMain",
    "ReorderResult",
    "ReplaceItemsResult",
    "SetupStatus",
    "ToggleMainResult",
    "UpdateListRequest",
    "UpdateListResult",
    "YearSummary",
    "YearSummaryList",
    "album_key",
]
