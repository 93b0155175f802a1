"""Fire-and-forget playcount refresh for newly added albums."""

import asyncio
import logging

from yearlists.domain.ports import IPlaycountRefresher, PlaycountTarget
from yearlists.infrastructure.persistence.database import Database
from yearlists.infrastructure.persistence.repositories import AlbumRepository

logger = logging.getLogger(__name__)


class PlaycountRefreshScheduler:
    """Runs IPlaycountRefresher in detached asyncio tasks.

    Hey future me - the event loop only keeps WEAK references to tasks, so an un-referenced
    create_task() can be garbage collected mid-flight. We keep every task in self._tasks
    until it finishes. Failures are logged at WARNING and never reach the caller: the list
    edit that triggered the refresh has already committed.
    """

    def __init__(self, database: Database, refresher: IPlaycountRefresher) -> None:
        self._database = database
        self._refresher = refresher
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(
        self, user_id: str, lastfm_username: str | None, album_ids: list[str]
    ) -> asyncio.Task[None] | None:
        """Start a background refresh. No-op without a linked account or albums."""
        if not lastfm_username or not album_ids:
            return None

        task = asyncio.create_task(
            self._run(user_id, lastfm_username, list(album_ids)),
            name=f"playcount-refresh-{user_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, user_id: str, lastfm_username: str, album_ids: list[str]) -> None:
        try:
            async with self._database.session_scope() as session:
                albums = await AlbumRepository(session).get_many(album_ids)
                targets = [
                    PlaycountTarget(album_id=a.album_id, artist=a.artist, album=a.album)
                    for a in albums
                ]
            if not targets:
                return

            logger.debug(
                "Triggering playcount refresh for added albums",
                extra={"user_id": user_id, "album_count": len(targets)},
            )
            await self._refresher.refresh(user_id, lastfm_username, targets)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Playcount refresh for added albums failed",
                extra={
                    "user_id": user_id,
                    "album_count": len(album_ids),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

    async def drain(self) -> None:
        """Wait for all in-flight refreshes (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
