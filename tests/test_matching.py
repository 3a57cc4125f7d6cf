from types import SimpleNamespace

import pytest

from fleetly.geo import haversine_km
from fleetly.matching import OperatorMatch, by_distance, effective_radius_km, match_operators

HOME = (45.4215, -75.6972)
KM_PER_DEG_LAT = 6371 * 3.141592653589793 / 180


def north_of(point, km):
    return (point[0] + km / KM_PER_DEG_LAT, point[1])


def operator(op_id=1, tier="manual", home=HOME, services=("Snow Plowing",), online=True, radius=None):
    return SimpleNamespace(
        id=op_id,
        tier=tier,
        home_lat=home[0] if home else None,
        home_lng=home[1] if home else None,
        operating_radius_km=radius,
        services=list(services),
        is_online=online,
    )


def request(point=HOME, service_type="Snow Plowing"):
    return SimpleNamespace(
        id=1,
        latitude=point[0] if point else None,
        longitude=point[1] if point else None,
        service_type=service_type,
    )


def matched_ids(req, ops):
    return [m.operator.id for m in match_operators(req, ops)]


def test_tier_radius_defaults():
    assert effective_radius_km("manual") == 5
    assert effective_radius_km("equipped") == 15
    assert effective_radius_km("professional") is None


def test_operator_radius_is_capped_by_tier_maximum():
    assert effective_radius_km("manual", 3) == 3
    assert effective_radius_km("manual", 20) == 8
    assert effective_radius_km("equipped", 100) == 50
    assert effective_radius_km("professional", 2) is None


@pytest.mark.parametrize("km", [0, 1, 4.9, 5.1, 10, 14.9, 15.1, 40])
@pytest.mark.parametrize("tier,radius", [("manual", 5), ("equipped", 15)])
def test_radius_tiers_excluded_exactly_when_beyond_radius(km, tier, radius):
    req_point = north_of(HOME, km)
    op = operator(tier=tier)
    distance = haversine_km(HOME[0], HOME[1], *req_point)
    assert (matched_ids(request(req_point), [op]) == [1]) == (distance <= radius)


@pytest.mark.parametrize("km", [0, 50, 500, 5000])
def test_professional_never_excluded_for_distance(km):
    assert matched_ids(request(north_of(HOME, km)), [operator(tier="professional")]) == [1]


def test_custom_radius_narrows_matching():
    op = operator(tier="equipped", radius=10)
    assert matched_ids(request(north_of(HOME, 9)), [op]) == [1]
    assert matched_ids(request(north_of(HOME, 12)), [op]) == []


def test_offline_operators_are_not_matched():
    assert matched_ids(request(), [operator(online=False, tier="professional")]) == []


def test_operator_must_offer_the_service():
    ops = [operator(1, services=("Towing",)), operator(2, services=("snow plowing", "Towing"))]
    assert matched_ids(request(), ops) == [2]


@pytest.mark.parametrize("tier", ["manual", "equipped", "professional"])
def test_operator_without_coordinates_is_skipped_not_fatal(tier):
    ops = [operator(1, tier=tier, home=None), operator(2, tier=tier)]
    assert matched_ids(request(), ops) == [2]


@pytest.mark.parametrize("tier", ["equipped", "professional"])
@pytest.mark.parametrize("bad_lat", ["not-a-number", float("nan"), 123.0])
def test_unparseable_operator_coordinates_are_skipped(tier, bad_lat):
    op = operator(1, tier=tier)
    op.home_lat = bad_lat
    assert matched_ids(request(), [op]) == []


def test_request_without_coordinates_only_reaches_unlimited_operators():
    ops = [
        operator(1, tier="manual"),
        operator(2, tier="equipped"),
        operator(3, tier="professional"),
        operator(4, tier="professional", home=None),
    ]
    matches = match_operators(request(point=None), ops)
    assert [m.operator.id for m in matches] == [3]
    assert matches[0].distance_km is None


def test_distances_are_reported_and_sortable():
    ops = [
        operator(1, tier="professional", home=north_of(HOME, 30)),
        operator(2, tier="professional", home=north_of(HOME, 300)),
        operator(3, tier="equipped", home=north_of(HOME, 2)),
    ]
    ordered = by_distance(match_operators(request(), ops))
    assert [m.operator.id for m in ordered] == [3, 1, 2]
    assert ordered[0].distance_km == pytest.approx(2, abs=0.01)


def test_unknown_distances_sort_last():
    far, unknown, near = (OperatorMatch(operator(i), d) for i, d in ((1, 30.0), (2, None), (3, 2.0)))
    assert [m.operator.id for m in by_distance([far, unknown, near])] == [3, 1, 2]
