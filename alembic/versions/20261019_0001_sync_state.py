"""offline sync state (mirror, offline notes, mutation log, translations)

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _note_columns() -> list[sa.Column]:
    # remote_notes / offline_notes 共用的笔记字段；每张表需要各自的 Column 实例
    return [
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=sa.text("''")),
        # 正文可能很长，用 Text 而不是 String
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "format", sa.String(length=50), nullable=False, server_default=sa.text("'markdown'")
        ),
        sa.Column("color", sa.String(length=32), nullable=True),
        sa.Column(
            "status", sa.String(length=20), nullable=False, server_default=sa.text("'active'")
        ),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("synced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "remote_notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        *_note_columns(),
    )
    op.create_index("ix_remote_notes_position", "remote_notes", ["position"], unique=False)

    op.create_table(
        "offline_notes",
        sa.Column("local_id", sa.String(length=64), primary_key=True, nullable=False),
        *_note_columns(),
    )
    op.create_index("ix_offline_notes_position", "offline_notes", ["position"], unique=False)

    op.create_table(
        "pending_operations",
        sa.Column("op_id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=10), nullable=False),
        sa.Column("local_id", sa.String(length=64), nullable=True),
        sa.Column("remote_id", sa.Integer(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        sa.Column("permanent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("enqueued_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_pending_operations_seq", "pending_operations", ["seq"], unique=False)
    op.create_index(
        "ix_pending_operations_local_id", "pending_operations", ["local_id"], unique=False
    )
    op.create_index(
        "ix_pending_operations_remote_id", "pending_operations", ["remote_id"], unique=False
    )
    op.create_index(
        "ix_pending_operations_enqueued_at", "pending_operations", ["enqueued_at"], unique=False
    )

    op.create_table(
        "id_translations",
        sa.Column("local_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("remote_id", sa.Integer(), nullable=False),
    )
    op.create_index(
        "ix_id_translations_remote_id", "id_translations", ["remote_id"], unique=False
    )

    op.create_table(
        "sync_meta",
        sa.Column("key", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("value", sa.BigInteger(), nullable=False),
    )

    op.create_table(
        "legacy_pending_notes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payload_json", sa.JSON(), nullable=True),
    )
    op.create_index(
        "ix_legacy_pending_notes_position", "legacy_pending_notes", ["position"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_legacy_pending_notes_position", table_name="legacy_pending_notes")
    op.drop_table("legacy_pending_notes")
    op.drop_table("sync_meta")
    op.drop_index("ix_id_translations_remote_id", table_name="id_translations")
    op.drop_table("id_translations")
    op.drop_index("ix_pending_operations_enqueued_at", table_name="pending_operations")
    op.drop_index("ix_pending_operations_remote_id", table_name="pending_operations")
    op.drop_index("ix_pending_operations_local_id", table_name="pending_operations")
    op.drop_index("ix_pending_operations_seq", table_name="pending_operations")
    op.drop_table("pending_operations")
    op.drop_index("ix_offline_notes_position", table_name="offline_notes")
    op.drop_table("offline_notes")
    op.drop_index("ix_remote_notes_position", table_name="remote_notes")
    op.drop_table("remote_notes")
