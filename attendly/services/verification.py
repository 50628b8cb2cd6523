"""Identity and geofence checks for an attendance submission.

Everything here is pure: the caller looks up whether the client id already
has a record for the event and passes the answer in. ``evaluate`` never
raises; it always returns a verdict.
"""
import math
from dataclasses import dataclass, field
from enum import Enum

from attendly.config import settings
from attendly.models.event import Event

EARTH_RADIUS_METERS = 6371e3

REASON_DUPLICATE_CLIENT_ID = "Duplicate client id: matched another submission"
REASON_NO_LOCATION = "No location provided"


class VerdictStatus(str, Enum):
    VERIFIED = "verified"
    SUSPICIOUS = "suspicious"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class VerificationPolicy:
    identity_check_enabled: bool = True
    identity_strict: bool = True
    geofence_enabled: bool = False
    center: Coordinates | None = None
    radius_meters: int = 100

    @classmethod
    def for_event(cls, event: Event) -> "VerificationPolicy":
        center = None
        if event.location_lat is not None and event.location_lng is not None:
            center = Coordinates(event.location_lat, event.location_lng)
        return cls(
            identity_check_enabled=event.client_id_check_enabled,
            identity_strict=event.client_id_collision_strict,
            geofence_enabled=event.location_check_enabled,
            center=center,
            radius_meters=clamp_radius(event.location_radius_meters),
        )


@dataclass(frozen=True)
class Verdict:
    status: VerdictStatus
    reasons: list[str] = field(default_factory=list)

    @property
    def reason(self) -> str | None:
        return "; ".join(self.reasons) if self.reasons else None


def clamp_radius(radius_meters: int | float | None) -> int:
    if radius_meters is None:
        return settings.RADIUS_DEFAULT_METERS
    return int(min(settings.RADIUS_MAX_METERS, max(settings.RADIUS_MIN_METERS, radius_meters)))


def haversine_meters(a: Coordinates, b: Coordinates) -> float:
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lng - a.lng)

    h = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # Rounding can push h a hair above 1 for antipodal points.
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_within_radius(center: Coordinates, point: Coordinates, radius_meters: int) -> bool:
    return haversine_meters(center, point) <= radius_meters


def evaluate(
    policy: VerificationPolicy,
    client_id_seen: bool,
    location: Coordinates | None,
    location_denied: bool = False,
) -> Verdict:
    reasons: list[str] = []

    if policy.identity_check_enabled and client_id_seen:
        # A strict collision short-circuits the geofence check.
        if policy.identity_strict:
            return Verdict(VerdictStatus.REJECTED, ["already_submitted"])
        reasons.append(REASON_DUPLICATE_CLIENT_ID)

    if policy.geofence_enabled:
        if location_denied or location is None:
            reasons.append(REASON_NO_LOCATION)
        elif policy.center is None:
            # A geofence without a center cannot be satisfied.
            reasons.append("Event location is not configured")
        elif not is_within_radius(policy.center, location, policy.radius_meters):
            distance = haversine_meters(policy.center, location)
            reasons.append(
                f"Outside allowed radius: {round(distance)}m away "
                f"(allowed: {policy.radius_meters}m)"
            )

    if reasons:
        return Verdict(VerdictStatus.SUSPICIOUS, reasons)
    return Verdict(VerdictStatus.VERIFIED)
