"""Shared fixtures: a throwaway SQLite database per test, seeded with two users.

Hey future me - every test gets its own database FILE under tmp_path. In-memory SQLite
hands each pooled connection its own empty database, which breaks as soon as a service
opens a second session.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path

import pytest

from yearlists.application.services import ListService, ListSetupService
from yearlists.config import Settings
from yearlists.domain.entities import AlbumPayload, CreateListRequest
from yearlists.infrastructure.persistence.database import Database
from yearlists.infrastructure.persistence.repositories import (
    UserRepository,
    YearLockRepository,
)

USER_ID = "user-alice"
OTHER_USER_ID = "user-bob"
LASTFM_USER_ID = "user-carol"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create test settings backed by a temp-file database."""
    return Settings(
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'yearlists.db'}"},
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    """Create the schema and the test users, dispose the engine afterwards."""
    db = Database(settings)
    await db.create_tables()
    async with db.session_scope() as session:
        users = UserRepository(session)
        await users.add(USER_ID, "alice")
        await users.add(OTHER_USER_ID, "bob")
        await users.add(LASTFM_USER_ID, "carol", lastfm_username="carol_fm")
    yield db
    await db.drop_tables()
    await db.close()


@pytest.fixture
def list_service(database: Database, settings: Settings) -> ListService:
    return ListService(database, settings)


@pytest.fixture
def setup_service(database: Database, settings: Settings) -> ListSetupService:
    return ListSetupService(database, settings)


@pytest.fixture
def lock_year(database: Database) -> Callable[[int], Awaitable[None]]:
    """Lock a year's results, as the reveal flow would."""

    async def _lock(year: int) -> None:
        async with database.session_scope() as session:
            await YearLockRepository(session).lock_year(year)

    return _lock


@pytest.fixture
def create_list(list_service: ListService) -> Callable[..., Awaitable[str]]:
    """Create a list for USER_ID and return its external id."""

    async def _create(
        name: str,
        year: int | None = None,
        albums: list[AlbumPayload] | None = None,
        group_id: str | None = None,
        user_id: str = USER_ID,
    ) -> str:
        result = await list_service.create_list(
            user_id,
            CreateListRequest(name=name, year=year, albums=albums, group_id=group_id),
        )
        return result.list_id

    return _create


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def other_user_id() -> str:
    return OTHER_USER_ID


@pytest.fixture
def lastfm_user_id() -> str:
    return LASTFM_USER_ID


@pytest.fixture
def make_album() -> Callable[..., AlbumPayload]:
    """Build an album payload with a default artist."""

    def _make(title: str, artist: str = "Artist", **kwargs: object) -> AlbumPayload:
        return AlbumPayload(artist=artist, album=title, **kwargs)  # type: ignore[arg-type]

    return _make
