from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

STATIC_TOKEN = "static"


class Event(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "events"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    series_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("series.id", ondelete="SET NULL"), index=True
    )
    event_date: Mapped[Optional[datetime]] = mapped_column()
    location_name: Mapped[Optional[str]] = mapped_column(String(200))

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Rotating QR: only the current lease holder writes these.
    rotation_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    rotation_interval_seconds: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    current_token: Mapped[Optional[str]] = mapped_column(String(120))
    token_expires_at: Mapped[Optional[datetime]] = mapped_column()

    # Host lease
    host_id: Mapped[Optional[str]] = mapped_column(String(120))
    host_lease_expires_at: Mapped[Optional[datetime]] = mapped_column()

    # Identity check: strict blocks a repeated client id, lenient flags it.
    client_id_check_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    client_id_collision_strict: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Geofence
    location_check_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    location_lat: Mapped[Optional[float]] = mapped_column(Float)
    location_lng: Mapped[Optional[float]] = mapped_column(Float)
    location_radius_meters: Mapped[int] = mapped_column(Integer, default=100, nullable=False)

    # Share links handed to helpers only work while this is on.
    moderation_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    series = relationship("Series", back_populates="events")

    def __repr__(self):
        return f"<Event(id={self.id}, name='{self.name}', active={self.is_active})>"
