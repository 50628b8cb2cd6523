import enum
from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class AttendanceStatus(str, enum.Enum):
    VERIFIED = "verified"
    SUSPICIOUS = "suspicious"
    CLEARED = "cleared"
    EXCUSED = "excused"


# Client ids minted by the server rather than read from a device.
SYNTHETIC_CLIENT_ID_PREFIXES = ("manual-", "moderator-", "excuse-", "import-", "collision-")


class AttendanceRecord(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "attendance_records"

    event_id: Mapped[str] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )

    attendee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    attendee_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)

    # client_id is unique per event; a tolerated collision is stored under a
    # synthetic "collision-" id with the device's id kept in client_id_raw.
    client_id: Mapped[str] = mapped_column(String(120), nullable=False)
    client_id_raw: Mapped[Optional[str]] = mapped_column(String(120))

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AttendanceStatus.VERIFIED.value
    )
    suspicious_reason: Mapped[Optional[str]] = mapped_column(Text)

    location_lat: Mapped[Optional[float]] = mapped_column(Float)
    location_lng: Mapped[Optional[float]] = mapped_column(Float)
    location_provided: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    event = relationship("Event")

    __table_args__ = (
        UniqueConstraint("event_id", "client_id", name="uq_attendance_event_client"),
    )

    @property
    def device_client_id(self) -> Optional[str]:
        """The identifier the attendee's device presented, if there was one."""
        if self.client_id_raw:
            return self.client_id_raw
        if self.client_id.startswith(SYNTHETIC_CLIENT_ID_PREFIXES):
            return None
        return self.client_id

    def __repr__(self):
        return f"<AttendanceRecord(event_id={self.event_id}, email='{self.attendee_email}', status='{self.status}')>"
