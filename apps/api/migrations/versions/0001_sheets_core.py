"""v1: users, templates, sheets, sheet_shares

- sheets.data_json / templates.schema_json hold JSON text (queried with json_extract)
- sheet_shares: unique (sheet_id, shared_with_user_id), cascades with its sheet
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_sheets_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=False),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # --- templates ---
    op.create_table(
        "templates",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("schema_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=False),
    )
    op.create_index("ix_templates_slug", "templates", ["slug"], unique=True)

    # --- sheets ---
    op.create_table(
        "sheets",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("user_id", sa.Text(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("template_id", sa.Text(), sa.ForeignKey("templates.id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("data_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
    )
    op.create_index("ix_sheets_user_id", "sheets", ["user_id"])
    op.create_index("ix_sheets_template_id", "sheets", ["template_id"])

    # --- sheet_shares ---
    op.create_table(
        "sheet_shares",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("sheet_id", sa.Text(), sa.ForeignKey("sheets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("shared_with_user_id", sa.Text(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.UniqueConstraint("sheet_id", "shared_with_user_id", name="uq_sheet_shares_sheet_user"),
    )
    op.create_index("ix_sheet_shares_sheet_id", "sheet_shares", ["sheet_id"])
    op.create_index("ix_sheet_shares_shared_with_user_id", "sheet_shares", ["shared_with_user_id"])


def downgrade() -> None:
    op.drop_index("ix_sheet_shares_shared_with_user_id", table_name="sheet_shares")
    op.drop_index("ix_sheet_shares_sheet_id", table_name="sheet_shares")
    op.drop_table("sheet_shares")
    op.drop_index("ix_sheets_template_id", table_name="sheets")
    op.drop_index("ix_sheets_user_id", table_name="sheets")
    op.drop_table("sheets")
    op.drop_index("ix_templates_slug", table_name="templates")
    op.drop_table("templates")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
