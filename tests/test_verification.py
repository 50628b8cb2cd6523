import pytest

from attendly.services.verification import (
    REASON_DUPLICATE_CLIENT_ID,
    REASON_NO_LOCATION,
    Coordinates,
    VerdictStatus,
    VerificationPolicy,
    clamp_radius,
    evaluate,
    haversine_meters,
    is_within_radius,
)

BERLIN = Coordinates(52.5200, 13.4050)


def _geofence(radius: int = 100, strict: bool = True) -> VerificationPolicy:
    return VerificationPolicy(
        identity_check_enabled=True,
        identity_strict=strict,
        geofence_enabled=True,
        center=BERLIN,
        radius_meters=radius,
    )


@pytest.mark.parametrize("radius", [1, 50, 100, 999_999, 1_000_000])
def test_exact_coordinates_are_always_inside(radius):
    assert is_within_radius(BERLIN, BERLIN, radius)
    assert evaluate(_geofence(radius), False, BERLIN).status is VerdictStatus.VERIFIED


@pytest.mark.parametrize("radius", [1, 100, 500_000, 999_999])
def test_antipodal_coordinates_are_never_inside(radius):
    antipode = Coordinates(-BERLIN.lat, BERLIN.lng - 180.0)
    assert not is_within_radius(BERLIN, antipode, radius)


def test_haversine_known_distance():
    paris = Coordinates(48.8566, 2.3522)
    distance = haversine_meters(BERLIN, paris)
    assert 870_000 < distance < 885_000
    assert haversine_meters(paris, BERLIN) == pytest.approx(distance)


def test_strict_mode_rejects_seen_client_id():
    verdict = evaluate(VerificationPolicy(identity_strict=True), True, None)
    assert verdict.status is VerdictStatus.REJECTED
    assert verdict.reasons == ["already_submitted"]


def test_lenient_mode_flags_seen_client_id():
    verdict = evaluate(VerificationPolicy(identity_strict=False), True, None)
    assert verdict.status is VerdictStatus.SUSPICIOUS
    assert "client id" in verdict.reason
    assert REASON_DUPLICATE_CLIENT_ID in verdict.reasons


def test_identity_check_disabled_ignores_seen_client_id():
    policy = VerificationPolicy(identity_check_enabled=False)
    assert evaluate(policy, True, None).status is VerdictStatus.VERIFIED


def test_strict_rejection_wins_over_geofence():
    far_away = Coordinates(0.0, 0.0)
    verdict = evaluate(_geofence(strict=True), True, far_away)
    assert verdict.status is VerdictStatus.REJECTED


@pytest.mark.parametrize("location, denied", [(None, False), (None, True), (BERLIN, True)])
def test_missing_or_denied_location_is_suspicious(location, denied):
    verdict = evaluate(_geofence(), False, location, location_denied=denied)
    assert verdict.status is VerdictStatus.SUSPICIOUS
    assert verdict.reasons == [REASON_NO_LOCATION]


def test_outside_radius_reports_distance():
    nearby = Coordinates(52.5300, 13.4050)  # about 1.1 km north
    verdict = evaluate(_geofence(radius=100), False, nearby)
    assert verdict.status is VerdictStatus.SUSPICIOUS
    assert verdict.reason.startswith("Outside allowed radius: ")
    assert verdict.reason.endswith("m away (allowed: 100m)")


def test_lenient_collision_and_geofence_reasons_are_joined():
    verdict = evaluate(_geofence(strict=False), True, None)
    assert verdict.status is VerdictStatus.SUSPICIOUS
    assert verdict.reason == f"{REASON_DUPLICATE_CLIENT_ID}; {REASON_NO_LOCATION}"


def test_geofence_disabled_ignores_location():
    policy = VerificationPolicy(geofence_enabled=False)
    assert evaluate(policy, False, None, location_denied=True).status is VerdictStatus.VERIFIED


@pytest.mark.parametrize(
    "raw, expected", [(0, 1), (-5, 1), (1, 1), (250, 250), (5_000_000, 1_000_000), (None, 100)]
)
def test_clamp_radius(raw, expected):
    assert clamp_radius(raw) == expected
