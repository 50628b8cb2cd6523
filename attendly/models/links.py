from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDPrimaryKeyMixin


class ShareLinkMixin(UUIDPrimaryKeyMixin):
    """A tokenized per-event link an organizer hands out and can switch off."""

    event_id: Mapped[str] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    label: Mapped[Optional[str]] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class ExcuseLink(Base, ShareLinkMixin):
    """Lets absent attendees record themselves as excused."""

    __tablename__ = "excuse_links"

    # None means the link never expires.
    expires_at: Mapped[Optional[datetime]] = mapped_column()

    def __repr__(self):
        return f"<ExcuseLink(event_id={self.event_id}, active={self.is_active})>"


class ModerationLink(Base, ShareLinkMixin):
    """Gives a helper moderation rights on one event without an account."""

    __tablename__ = "moderation_links"

    def __repr__(self):
        return f"<ModerationLink(event_id={self.event_id}, active={self.is_active})>"
