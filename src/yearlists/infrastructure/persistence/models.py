"""SQLAlchemy ORM models for yearlists."""

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from yearlists.domain.value_objects import new_external_id


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now() without
# timezone - naive datetimes break comparisons between rows written by different hosts.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# SQLite doesn't preserve timezone info - UTC datetimes come back naive. Use this before
# comparing a DB datetime with datetime.now(UTC).
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models.

    All models inherit from this to use the same metadata registry.
    """

    pass


class UserModel(Base):
    """The slice of a user account the list core reads and writes.

    Authentication lives elsewhere. lastfm_username marks a linked scrobbling
    account (drives playcount refresh), list_setup_dismissed_until snoozes the
    setup wizard.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False)
    lastfm_username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    list_setup_dismissed_until: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


# Hey future me - groups are the containers the UI shows lists in. Two kinds:
# - year-groups (year set, name = str(year)), one per user per year
# - collections (year NULL), including the auto-created "Uncategorized" one
# Year-groups and "Uncategorized" are auto-managed: created on demand, deleted once empty.
class ListGroupModel(Base):
    """SQLAlchemy model for a list group (year-group or collection)."""

    __tablename__ = "list_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(
        String(24), nullable=False, unique=True, default=new_external_id
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    lists: Mapped[list["ListModel"]] = relationship(
        "ListModel", back_populates="group"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_list_groups_user_name"),
        Index(
            "ix_list_groups_user_year",
            "user_id",
            "year",
            unique=True,
            sqlite_where=sa.text("year IS NOT NULL"),
            postgresql_where=sa.text("year IS NOT NULL"),
        ),
        sa.CheckConstraint(
            "year IS NULL OR (year >= 1000 AND year <= 9999)",
            name="ck_list_groups_year_range",
        ),
    )


# Listen up - a list has TWO ids. `id` is the internal serial key used by foreign keys,
# `external_id` is the stable 24-hex id handed to clients. Never expose `id`.
# is_main is the "official ranking for this year" flag; at most one list per
# (user, effective year) may carry it. The DB can't enforce that (effective year
# depends on the group join) so the service does, inside one transaction.
class ListModel(Base):
    """SQLAlchemy model for a ranked album list."""

    __tablename__ = "lists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(
        String(24), nullable=False, unique=True, default=new_external_id
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    group_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("list_groups.id", ondelete="SET NULL"), nullable=True
    )
    is_main: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default=sa.false()
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    group: Mapped["ListGroupModel | None"] = relationship(
        "ListGroupModel", back_populates="lists"
    )
    items: Mapped[list["ListItemModel"]] = relationship(
        "ListItemModel",
        back_populates="list",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ListItemModel.position",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", "group_id", name="uq_lists_user_group_name"),
        Index("ix_lists_group", "group_id"),
        Index("ix_lists_user_main", "user_id", "is_main"),
    )


class AlbumModel(Base):
    """Canonical album record, one per normalized artist + album."""

    __tablename__ = "albums"

    # External id (Spotify, MusicBrainz, ...) or "internal-<uuid>" for manual entries
    album_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    artist: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    album: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    # Lowercased, whitespace-collapsed lookup keys for canonical matching
    artist_normalized: Mapped[str] = mapped_column(
        String(512), nullable=False, default=""
    )
    album_normalized: Mapped[str] = mapped_column(
        String(512), nullable=False, default=""
    )
    release_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    genre_1: Mapped[str | None] = mapped_column(String(128), nullable=True)
    genre_2: Mapped[str | None] = mapped_column(String(128), nullable=True)
    tracks: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        Index("ix_albums_normalized", "artist_normalized", "album_normalized"),
    )


# Hey future me - positions are 1-based and may have gaps (removals don't compact).
# Rank = order by position, never the raw value. (list_id, album_id) is unique: adding
# an album twice is reported as a duplicate by the service, the constraint is the backstop.
class ListItemModel(Base):
    """SQLAlchemy model for one ranked album inside a list."""

    __tablename__ = "list_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(
        String(24), nullable=False, unique=True, default=new_external_id
    )
    list_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("lists.id", ondelete="CASCADE"), nullable=False
    )
    album_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("albums.album_id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_track: Mapped[str | None] = mapped_column(String(512), nullable=True)
    secondary_track: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    list: Mapped["ListModel"] = relationship("ListModel", back_populates="items")
    album: Mapped["AlbumModel"] = relationship("AlbumModel")

    __table_args__ = (
        UniqueConstraint("list_id", "album_id", name="uq_list_items_list_album"),
        Index("ix_list_items_position", "list_id", "position"),
    )


class YearLockModel(Base):
    """Reveal state of a year. locked=True means the year's results are final."""

    __tablename__ = "year_locks"

    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    locked: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default=sa.false()
    )
    locked_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
