"""Initial schema: users, list groups, lists, list items, albums, year locks.

Hey future me - this is the whole list core in one revision. Things the ORM models rely on:
- list_items.list_id cascades on list delete, lists.group_id goes NULL on group delete
- (list_id, album_id) is unique: an album appears at most once per list
- one year-group per (user_id, year), enforced by a partial unique index

Revision ID: 20260101_0001
Revises:
Create Date: 2026-01-01
"""

from typing import Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20260101_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def upgrade() -> None:
    """Create the list core tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("lastfm_username", sa.String(255), nullable=True),
        sa.Column("list_setup_dismissed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "albums",
        sa.Column("album_id", sa.String(255), primary_key=True),
        sa.Column("artist", sa.String(512), nullable=False),
        sa.Column("album", sa.String(512), nullable=False),
        sa.Column("artist_normalized", sa.String(512), nullable=False),
        sa.Column("album_normalized", sa.String(512), nullable=False),
        sa.Column("release_date", sa.String(32), nullable=True),
        sa.Column("country", sa.String(128), nullable=True),
        sa.Column("genre_1", sa.String(128), nullable=True),
        sa.Column("genre_2", sa.String(128), nullable=True),
        sa.Column("tracks", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_albums_normalized", "albums", ["artist_normalized", "album_normalized"]
    )

    op.create_table(
        "list_groups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(24), nullable=False, unique=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "name", name="uq_list_groups_user_name"),
        sa.CheckConstraint(
            "year IS NULL OR (year >= 1000 AND year <= 9999)",
            name="ck_list_groups_year_range",
        ),
    )
    op.create_index("ix_list_groups_user_id", "list_groups", ["user_id"])
    op.create_index(
        "ix_list_groups_user_year",
        "list_groups",
        ["user_id", "year"],
        unique=True,
        sqlite_where=sa.text("year IS NOT NULL"),
        postgresql_where=sa.text("year IS NOT NULL"),
    )

    op.create_table(
        "lists",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(24), nullable=False, unique=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("list_groups.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_main", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "name", "group_id", name="uq_lists_user_group_name"
        ),
    )
    op.create_index("ix_lists_user_id", "lists", ["user_id"])
    op.create_index("ix_lists_year", "lists", ["year"])
    op.create_index("ix_lists_group", "lists", ["group_id"])
    op.create_index("ix_lists_user_main", "lists", ["user_id", "is_main"])

    op.create_table(
        "list_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(24), nullable=False, unique=True),
        sa.Column(
            "list_id",
            sa.Integer(),
            sa.ForeignKey("lists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "album_id",
            sa.String(255),
            sa.ForeignKey("albums.album_id"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("primary_track", sa.String(512), nullable=True),
        sa.Column("secondary_track", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("list_id", "album_id", name="uq_list_items_list_album"),
    )
    op.create_index("ix_list_items_album_id", "list_items", ["album_id"])
    op.create_index("ix_list_items_position", "list_items", ["list_id", "position"])

    op.create_table(
        "year_locks",
        sa.Column("year", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Drop the list core tables."""
    op.drop_table("year_locks")
    op.drop_index("ix_list_items_position", table_name="list_items")
    op.drop_index("ix_list_items_album_id", table_name="list_items")
    op.drop_table("list_items")
    op.drop_index("ix_lists_user_main", table_name="lists")
    op.drop_index("ix_lists_group", table_name="lists")
    op.drop_index("ix_lists_year", table_name="lists")
    op.drop_index("ix_lists_user_id", table_name="lists")
    op.drop_table("lists")
    op.drop_index("ix_list_groups_user_year", table_name="list_groups")
    op.drop_index("ix_list_groups_user_id", table_name="list_groups")
    op.drop_table("list_groups")
    op.drop_index("ix_albums_normalized", table_name="albums")
    op.drop_table("albums")
    op.drop_table("users")
