"""create users, folders and notes

Revision ID: 3f1a9c2d7e45
Revises:
Create Date: 2026-10-17 09:12:04.118532

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e45'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "folders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "author_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_folders_author_id", "folders", ["author_id"])
    op.create_index("idx_folders_author_name", "folders", ["author_id", "name"])

    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "author_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "folder_id",
            sa.Integer(),
            sa.ForeignKey("folders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_notes_author_id", "notes", ["author_id"])
    op.create_index("idx_notes_author_folder", "notes", ["author_id", "folder_id"])
    op.create_index("idx_notes_author_updated", "notes", ["author_id", "updated_at"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_notes_author_updated", table_name="notes")
    op.drop_index("idx_notes_author_folder", table_name="notes")
    op.drop_index("idx_notes_author_id", table_name="notes")
    op.drop_table("notes")

    op.drop_index("idx_folders_author_name", table_name="folders")
    op.drop_index("idx_folders_author_id", table_name="folders")
    op.drop_table("folders")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
