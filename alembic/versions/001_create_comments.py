"""001_create_comments

Revision ID: 001
Revises:
Create Date: 2025-10-08 01:27:17.000000

Creates the mp_Comments table:
  - self-referencing ParentGuid foreign key with ON DELETE RESTRICT
  - ModerationStatus CHECK constraint (0 pending, 1 approved, 2 spam, 3 rejected)
  - indexes for content, site, parent and date lookups
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None

TABLE = "mp_Comments"

INDEXES: list[tuple[str, list[str]]] = [
    ("IX_mp_Comments_ContentGuid", ["ContentGuid"]),
    ("IX_mp_Comments_SiteGuid", ["SiteGuid"]),
    ("IX_mp_Comments_ParentGuid", ["ParentGuid"]),
    ("IX_mp_Comments_CreatedUtc", ["CreatedUtc"]),
    ("IX_mp_Comments_Content_Status_Date", ["ContentGuid", "ModerationStatus", "CreatedUtc"]),
    ("IX_mp_Comments_Parent_Date", ["ParentGuid", "CreatedUtc"]),
]


def upgrade() -> None:
    moderation_status = sa.Column(
        "ModerationStatus",
        sa.SmallInteger(),
        nullable=False,
        server_default="1",
    )

    # ── mp_Comments ───────────────────────────────────────────────────────────
    op.create_table(
        TABLE,
        sa.Column("Guid", sa.Uuid(), nullable=False),
        sa.Column("ParentGuid", sa.Uuid(), nullable=True),
        sa.Column("SiteGuid", sa.Uuid(), nullable=False),
        sa.Column("FeatureGuid", sa.Uuid(), nullable=False),
        sa.Column("ModuleGuid", sa.Uuid(), nullable=False),
        sa.Column("ContentGuid", sa.Uuid(), nullable=False),
        sa.Column("UserGuid", sa.Uuid(), nullable=False),
        sa.Column("Title", sa.String(255), nullable=True),
        sa.Column("UserComment", sa.Text(), nullable=True),
        sa.Column("UserName", sa.String(50), nullable=True),
        sa.Column("UserEmail", sa.String(100), nullable=True),
        sa.Column("UserUrl", sa.String(255), nullable=True),
        sa.Column("UserIp", sa.String(50), nullable=True),
        sa.Column(
            "CreatedUtc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "LastModUtc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        moderation_status,
        sa.Column("ModeratedBy", sa.Uuid(), nullable=True),
        sa.Column("ModerationReason", sa.String(255), nullable=True),
        sa.CheckConstraint(
            moderation_status.in_([0, 1, 2, 3]),
            name="CK_mp_Comments_moderation_status_valid",
        ),
        sa.ForeignKeyConstraint(
            ["ParentGuid"], [f"{TABLE}.Guid"],
            name="FK_mp_Comments_mp_Comments_ParentGuid",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("Guid", name="PK_mp_Comments"),
    )
    for name, columns in INDEXES:
        op.create_index(name, TABLE, columns)


def downgrade() -> None:
    for name, _ in reversed(INDEXES):
        op.drop_index(name, table_name=TABLE)
    op.drop_table(TABLE)
