"""Domain value objects and small pure helpers."""

import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from yearlists.domain.exceptions import ValidationError

DEFAULT_MIN_YEAR = 1000
DEFAULT_MAX_YEAR = 9999


def new_external_id() -> str:
    """Generate a stable external id (24 hex chars) for lists, groups and items."""
    return secrets.token_hex(12)


# Hey future me - years arrive as ints from Python callers but as strings from form posts
# and JSON bodies that were never coerced. None/"" mean "no year" and are valid wherever a
# year is optional; callers that REQUIRE a year check for None themselves.
def validate_year(
    year: Any,
    min_year: int = DEFAULT_MIN_YEAR,
    max_year: int = DEFAULT_MAX_YEAR,
) -> int | None:
    """Validate and normalize a year value.

    Args:
        year: Year as int, numeric string, None or ""
        min_year: Lowest accepted year
        max_year: Highest accepted year

    Returns:
        The year as int, or None when no year was given

    Raises:
        ValidationError: If the value is not an integer or out of range
    """
    if year is None or year == "":
        return None

    if isinstance(year, bool):
        raise ValidationError("Year must be a valid integer")

    if isinstance(year, str):
        try:
            value = int(year.strip())
        except ValueError as e:
            raise ValidationError("Year must be a valid integer") from e
    elif isinstance(year, int):
        value = year
    else:
        raise ValidationError("Year must be a valid integer")

    if value < min_year or value > max_year:
        raise ValidationError(f"Year must be between {min_year} and {max_year}")
    return value


def normalize_comment(comment: str | None) -> str | None:
    """Trim a comment; blank comments become None (no comment)."""
    if comment is None:
        return None
    trimmed = comment.strip()
    return trimmed or None


# Two ways to address a list item. Web clients only know album ids, other surfaces
# (mobile, extension) send item ids. Both can appear in the same reorder call.
@dataclass(frozen=True)
class ByAlbum:
    """Address a list item by its album identifier."""

    album_id: str


@dataclass(frozen=True)
class ByItem:
    """Address a list item by its own item identifier."""

    item_id: str


ItemKey = ByAlbum | ByItem


def parse_order_entry(entry: Any) -> ItemKey | None:
    """Resolve one reorder entry into an ItemKey.

    Accepts a bare album id string, a mapping carrying the item id under
    "_id" (or "item_id" / "itemId"), or an ItemKey. Anything else is unusable
    and returns None.
    """
    if isinstance(entry, (ByAlbum, ByItem)):
        return entry
    if isinstance(entry, str):
        return ByAlbum(entry) if entry else None
    if isinstance(entry, Mapping):
        for field_name in ("_id", "item_id", "itemId"):
            item_id = entry.get(field_name)
            if isinstance(item_id, str) and item_id:
                return ByItem(item_id)
    return None


__all__ = [
    "DEFAULT_MAX_YEAR",
    "DEFAULT_MIN_YEAR",
    "ByAlbum",
    "ByItem",
    "ItemKey",
    "new_external_id",
    "normalize_comment",
    "parse_order_entry",
    "validate_year",
]
