from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDPrimaryKeyMixin


class AttendanceSession(Base, UUIDPrimaryKeyMixin):
    """Single-use, time-boxed authorization opened by a validated scan."""

    __tablename__ = "attendance_sessions"

    event_id: Mapped[str] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Snapshot of the token that authorized the scan, plus hashes used to bind
    # the later submission to the same token and device.
    token: Mapped[str] = mapped_column(String(120), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    client_id_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column()

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None

    def __repr__(self):
        return f"<AttendanceSession(id={self.id}, event_id={self.event_id})>"
