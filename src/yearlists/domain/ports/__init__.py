"""Domain ports (interfaces) for the collaborators the list core consults."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from yearlists.domain.entities import AlbumPayload, AlbumUpsertResult
from yearlists.domain.rules import MutationScope


class IYearLockGuard(ABC):
    """Answers whether a year is locked and rejects mutations that a lock forbids.

    Every validate_*/ensure_* method raises YearLockedError when the mutation is
    not permitted and returns None otherwise.
    """

    @abstractmethod
    async def is_year_locked(self, year: int | None) -> bool:
        """Check whether a year's results have been revealed."""
        pass

    @abstractmethod
    async def validate_year_not_locked(self, year: int | None, action: str) -> None:
        """Reject the action if the year is locked."""
        pass

    @abstractmethod
    async def validate_main_list_not_locked(
        self, year: int | None, is_main: bool, action: str
    ) -> None:
        """Reject the action if the year is locked and the list is its main list."""
        pass

    @abstractmethod
    async def ensure_can_mutate(
        self,
        effective_year: int | None,
        is_main: bool,
        action: str,
        scope: MutationScope = MutationScope.MAIN_LIST,
    ) -> None:
        """Precondition composed into every mutating operation."""
        pass


class IAlbumIdentityResolver(ABC):
    """Maps raw artist/album payloads to stable canonical album ids."""

    @abstractmethod
    async def upsert_album_record(
        self, album: AlbumPayload, timestamp: datetime
    ) -> str:
        """Resolve (inserting if needed) a single album and return its album_id."""
        pass

    @abstractmethod
    async def batch_upsert_album_records(
        self, albums: list[AlbumPayload], timestamp: datetime
    ) -> dict[str, AlbumUpsertResult]:
        """Resolve many albums at once, keyed by AlbumPayload.key."""
        pass


@dataclass(frozen=True)
class PlaycountTarget:
    """An album whose playback history should be refreshed."""

    album_id: str
    artist: str
    album: str


class IPlaycountRefresher(ABC):
    """Refreshes scrobbling playcounts for albums a user just added."""

    @abstractmethod
    async def refresh(
        self,
        user_id: str,
        lastfm_username: str,
        albums: list[PlaycountTarget],
    ) -> None:
        """Fetch and store playcounts. May be slow; always run in the background."""
        pass


__all__ = [
    "IAlbumIdentityResolver",
    "IPlaycountRefresher",
    "IYearLockGuard",
    "PlaycountTarget",
]
