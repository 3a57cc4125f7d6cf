from types import SimpleNamespace

import pytest

from fleetly.quote_engine import (
    compute_auto_quote, estimate_distance_km, find_config, parse_budget_range,
)
from fleetly.schemas import OtherDetails, details_for


def config(base=50, per_km=5, minimum=40, multipliers=None, tier="equipped", service_type="Snow Plowing"):
    return SimpleNamespace(
        tier=tier,
        service_type=service_type,
        base_rate=base,
        per_km_rate=per_km,
        minimum_fee=minimum,
        urgency_multipliers=multipliers if multipliers is not None else {"emergency": 1.5, "scheduled": 1.0},
    )


def request(service_type="Snow Plowing", details=None, emergency=False, budget="$80-$120"):
    return SimpleNamespace(
        service_type=service_type,
        details=details if details is not None else {"area_size": "medium"},
        is_emergency=emergency,
        budget_range=budget,
    )


def test_pricing_config_formula():
    quote = compute_auto_quote(config(), request())
    assert quote.amount == 65.00
    assert quote.method == "pricing_config"
    assert not quote.insufficient
    b = quote.breakdown
    assert (b.base_rate, b.estimated_distance_km, b.distance_cost, b.urgency_multiplier) == (50, 3, 15, 1.0)
    assert b.minimum_fee == 40
    assert b.total == 65.00


def test_minimum_fee_clamps_upward():
    quote = compute_auto_quote(config(minimum=100), request())
    assert quote.amount == 100.00
    assert quote.breakdown.total == 100.00


def test_emergency_uses_configured_multiplier():
    quote = compute_auto_quote(config(multipliers={"emergency": 2.0}), request(emergency=True))
    assert quote.amount == 130.00


def test_missing_multipliers_fall_back_to_defaults():
    assert compute_auto_quote(config(multipliers={}), request(emergency=True)).amount == 97.50
    assert compute_auto_quote(config(multipliers={}), request(emergency=False)).amount == 65.00


def test_rounds_to_cents():
    quote = compute_auto_quote(config(base=10.333, per_km=0, minimum=0), request())
    assert quote.amount == 10.33


def test_never_negative():
    quote = compute_auto_quote(config(base=-100, per_km=-5, minimum=0), request())
    assert quote.amount >= 0


def test_no_config_uses_budget_midpoint():
    quote = compute_auto_quote(None, request(budget="$80-$120"))
    assert quote.amount == 100.00
    assert quote.method == "customer_budget"
    assert quote.breakdown.budget_min == 80
    assert quote.breakdown.budget_max == 120
    assert not quote.insufficient


@pytest.mark.parametrize("budget", [None, "", "flexible", "$abc-$def", "80"])
def test_unparseable_budget_is_flagged_insufficient(budget):
    quote = compute_auto_quote(None, request(budget=budget))
    assert quote.amount == 0
    assert quote.insufficient
    assert quote.method == "customer_budget"


def test_budget_range_parsing():
    assert parse_budget_range("$60-$100") == (60, 100)
    assert parse_budget_range("$60-100") == (60, 100)
    assert parse_budget_range("$120 - $80") == (80, 120)
    assert parse_budget_range("about a hundred") is None


@pytest.mark.parametrize("service_type,details,km", [
    ("Snow Plowing", {}, 1),
    ("Snow Plowing", {"area_size": "large"}, 5),
    ("Snow Plowing", {"areaSize": "medium"}, 3),
    ("Snow Plowing", {"area_size": "enormous"}, 1),
    ("Hauling", {}, 2),
    ("Hauling", {"loadSize": "large"}, 8),
    ("Towing", {"destination": "Main St garage"}, 10),
    ("Courier", {"packageSize": "small"}, 5),
    ("Landscaping", {"lawn": "big"}, 5),
])
def test_distance_proxy_by_service(service_type, details, km):
    assert estimate_distance_km(details_for(service_type, details)) == km


def test_unknown_services_keep_their_payload():
    details = details_for("Landscaping", {"lawn": "big"})
    assert isinstance(details, OtherDetails)
    assert details.payload == {"lawn": "big"}
    assert details_for("Landscaping", details.model_dump()) == details


def test_numeric_detail_values_are_kept_as_text():
    details = details_for("Hauling", {"loadSize": "medium", "numberOfItems": 3, "weight": 40.5})
    assert details.kind == "hauling"
    assert details.number_of_items == "3"
    assert details.weight == "40.5"
    assert estimate_distance_km(details) == 5


def test_unreadable_detail_fields_are_dropped():
    details = details_for("Snow Plowing", {"areaSize": "large", "hasObstacles": "sometimes", "snowDepth": ["a"]})
    assert details.kind == "snow_plowing"
    assert details.area_size == "large"
    assert details.has_obstacles is None
    assert details.snow_depth is None
    assert estimate_distance_km(details) == 5


def test_malformed_other_payload_is_stored_as_received():
    details = details_for("Landscaping", {"kind": "other", "payload": "not a dict"})
    assert isinstance(details, OtherDetails)
    assert details.payload == {"payload": "not a dict"}


def test_find_config_matches_tier_and_service():
    configs = [
        config(tier="manual"),
        config(tier="equipped", service_type="Towing"),
        config(tier="equipped", base=70),
    ]
    assert find_config(configs, "equipped", "Snow Plowing").base_rate == 70
    assert find_config(configs, "professional", "Snow Plowing") is None
