from datetime import datetime

from sqlalchemy import ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SuggestionDismissal(Base):
    __tablename__ = "suggestion_dismissals"

    series_id: Mapped[str] = mapped_column(
        ForeignKey("series.id", ondelete="CASCADE"), primary_key=True
    )
    suggestion_id: Mapped[str] = mapped_column(String(700), primary_key=True)
    dismissed_by: Mapped[str] = mapped_column(String(120), primary_key=True, default="")
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
