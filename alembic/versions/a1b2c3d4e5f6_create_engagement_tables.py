"""Create engagement tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 12:00:00.000000

This migration adds:
- users and categories tables
- content table with denormalized view/like counters
- content_views ledger, unique per (content, identity kind, identity key)
- likes registry, unique per (content, user)
"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_username", "users", ["username"], unique=False)

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_categories_id", "categories", ["id"], unique=False)
    op.create_index("ix_categories_slug", "categories", ["slug"], unique=True)

    op.create_table(
        "content",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("media_url", sa.String(), nullable=True),
        sa.Column("thumbnail_url", sa.String(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "PUBLISHED", "ARCHIVED", name="contentstatus"),
            nullable=False,
            server_default="PUBLISHED",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("like_count", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("view_count >= 0", name="ck_content_view_count_non_negative"),
        sa.CheckConstraint("like_count >= 0", name="ck_content_like_count_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_content_id", "content", ["id"], unique=False)
    op.create_index("ix_content_title", "content", ["title"], unique=False)
    op.create_index("ix_content_user_id", "content", ["user_id"], unique=False)
    op.create_index("ix_content_category_id", "content", ["category_id"], unique=False)
    op.create_index("idx_content_status", "content", ["status"], unique=False)
    op.create_index("idx_content_category_status", "content", ["category_id", "status"], unique=False)

    op.create_table(
        "content_views",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("content_id", sa.Integer(), nullable=False),
        sa.Column("identity_kind", sa.Enum("USER", "SESSION", "IP", name="identitykind"), nullable=False),
        sa.Column("identity_key", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("counted_views", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("first_viewed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("viewed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["content_id"], ["content.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("content_id", "identity_kind", "identity_key", name="uq_content_view_identity"),
    )
    op.create_index("ix_content_views_id", "content_views", ["id"], unique=False)
    op.create_index("idx_content_views_content_viewed", "content_views", ["content_id", "viewed_at"], unique=False)
    op.create_index("idx_content_views_viewed_at", "content_views", ["viewed_at"], unique=False)

    op.create_table(
        "likes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("content_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["content_id"], ["content.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("content_id", "user_id", name="uq_like_content_user"),
    )
    op.create_index("ix_likes_id", "likes", ["id"], unique=False)
    op.create_index("ix_likes_content_id", "likes", ["content_id"], unique=False)
    op.create_index("ix_likes_user_id", "likes", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_table("likes")
    op.drop_table("content_views")
    op.drop_table("content")
    op.drop_table("categories")
    op.drop_table("users")

    # Drop enums (PostgreSQL keeps them after the tables are gone)
    sa.Enum(name="identitykind").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="contentstatus").drop(op.get_bind(), checkfirst=True)
