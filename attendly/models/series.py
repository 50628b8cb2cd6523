from typing import List, Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Series(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A group of recurring events whose attendee records are sanitized together."""

    __tablename__ = "series"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    events: Mapped[List["Event"]] = relationship(back_populates="series")  # noqa: F821

    def __repr__(self):
        return f"<Series(id={self.id}, name='{self.name}')>"
