"""excuse and moderation share links

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18 15:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _link_columns() -> list:
    return [
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id",
            sa.String(36),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token", sa.String(120), nullable=False, unique=True),
        sa.Column("label", sa.String(200)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    op.add_column(
        "events",
        sa.Column("moderation_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "excuse_links",
        *_link_columns(),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_excuse_links_event_id", "excuse_links", ["event_id"])

    op.create_table("moderation_links", *_link_columns())
    op.create_index("ix_moderation_links_event_id", "moderation_links", ["event_id"])


def downgrade() -> None:
    op.drop_index("ix_moderation_links_event_id", table_name="moderation_links")
    op.drop_table("moderation_links")
    op.drop_index("ix_excuse_links_event_id", table_name="excuse_links")
    op.drop_table("excuse_links")
    op.drop_column("events", "moderation_enabled")
