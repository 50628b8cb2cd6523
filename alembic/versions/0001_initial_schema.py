"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "series",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("series_id", sa.String(36), sa.ForeignKey("series.id", ondelete="SET NULL")),
        sa.Column("event_date", sa.DateTime(timezone=True)),
        sa.Column("location_name", sa.String(200)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rotation_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("rotation_interval_seconds", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("current_token", sa.String(120)),
        sa.Column("token_expires_at", sa.DateTime(timezone=True)),
        sa.Column("host_id", sa.String(120)),
        sa.Column("host_lease_expires_at", sa.DateTime(timezone=True)),
        sa.Column(
            "client_id_check_enabled", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "client_id_collision_strict", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "location_check_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("location_lat", sa.Float()),
        sa.Column("location_lng", sa.Float()),
        sa.Column("location_radius_meters", sa.Integer(), nullable=False, server_default="100"),
        *_timestamps(),
    )
    op.create_index("ix_events_series_id", "events", ["series_id"])

    op.create_table(
        "attendance_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id",
            sa.String(36),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("token", sa.String(120), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("client_id_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_attendance_sessions_event_id", "attendance_sessions", ["event_id"])

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "event_id",
            sa.String(36),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("attendee_name", sa.String(200), nullable=False),
        sa.Column("attendee_email", sa.String(320), nullable=False),
        sa.Column("client_id", sa.String(120), nullable=False),
        sa.Column("client_id_raw", sa.String(120)),
        sa.Column("status", sa.String(20), nullable=False, server_default="verified"),
        sa.Column("suspicious_reason", sa.Text()),
        sa.Column("location_lat", sa.Float()),
        sa.Column("location_lng", sa.Float()),
        sa.Column("location_provided", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "client_id", name="uq_attendance_event_client"),
    )
    op.create_index("ix_attendance_records_event_id", "attendance_records", ["event_id"])
    op.create_index(
        "ix_attendance_records_attendee_email", "attendance_records", ["attendee_email"]
    )

    op.create_table(
        "suggestion_dismissals",
        sa.Column(
            "series_id",
            sa.String(36),
            sa.ForeignKey("series.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("suggestion_id", sa.String(700), primary_key=True),
        sa.Column("dismissed_by", sa.String(120), primary_key=True, server_default=""),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )


def downgrade() -> None:
    op.drop_table("suggestion_dismissals")
    op.drop_index("ix_attendance_records_attendee_email", table_name="attendance_records")
    op.drop_index("ix_attendance_records_event_id", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_index("ix_attendance_sessions_event_id", table_name="attendance_sessions")
    op.drop_table("attendance_sessions")
    op.drop_index("ix_events_series_id", table_name="events")
    op.drop_table("events")
    op.drop_table("series")
