"""Application services for list and ranking management."""

from yearlists.application.services.album_resolver import CanonicalAlbumResolver
from yearlists.application.services.list_items import ListItemMutator
from yearlists.application.services.list_service import ListService
from yearlists.application.services.playcount_refresh import PlaycountRefreshScheduler
from yearlists.application.services.setup_service import ListSetupService
from yearlists.application.services.year_lock_guard import YearLockGuard

__all__ = [
    "CanonicalAlbumResolver",
    "ListItemMutator",
    "ListService",
    "ListSetupService",
    "PlaycountRefreshScheduler",
    "YearLockGuard",
]
