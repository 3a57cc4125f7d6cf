# --- fleetly/quote_engine.py ------------------------------------------------
# Auto-quote pricing; no I/O, operates on snapshots of config + request.

import re

from .schemas import (
    AutoQuote, BudgetBreakdown, CourierDetails, HaulingDetails, PricingBreakdown,
    SnowPlowingDetails, TowingDetails, details_for,
)

# Ordinal size buckets -> rough km of work; not routing distances
SNOW_AREA_KM = {"small": 1.0, "medium": 3.0, "large": 5.0}
HAULING_LOAD_KM = {"small": 2.0, "medium": 5.0, "large": 8.0}
TOWING_KM = 10.0
DEFAULT_KM = 5.0

URGENCY_DEFAULTS = {"emergency": 1.5, "scheduled": 1.0}

BUDGET_RE = re.compile(r"\$\s*(\d+(?:\.\d+)?)\s*-\s*\$?\s*(\d+(?:\.\d+)?)")

def _num(v, default=0.0):
    try:
        return float(v)
    except (TypeError, ValueError):
        return default

def parse_budget_range(text):
    """'$80-$120' -> (80.0, 120.0); anything else -> None."""
    m = BUDGET_RE.search(text or "")
    if not m:
        return None
    lo, hi = float(m.group(1)), float(m.group(2))
    return (min(lo, hi), max(lo, hi))

def estimate_distance_km(details) -> float:
    if isinstance(details, SnowPlowingDetails):
        return SNOW_AREA_KM.get((details.area_size or "small").lower(), SNOW_AREA_KM["small"])
    if isinstance(details, HaulingDetails):
        return HAULING_LOAD_KM.get((details.load_size or "small").lower(), HAULING_LOAD_KM["small"])
    if isinstance(details, TowingDetails):
        return TOWING_KM
    if isinstance(details, CourierDetails):
        return DEFAULT_KM
    return DEFAULT_KM

def urgency_multiplier(multipliers, is_emergency: bool) -> float:
    key = "emergency" if is_emergency else "scheduled"
    value = _num((multipliers or {}).get(key), 0.0)
    # Missing or non-positive entries fall back to the defaults
    return value if value > 0 else URGENCY_DEFAULTS[key]

def budget_midpoint_quote(budget_range) -> AutoQuote:
    parsed = parse_budget_range(budget_range)
    if parsed is None:
        return AutoQuote(
            amount=0.0, method="customer_budget", insufficient=True,
            breakdown=BudgetBreakdown(budget_range=budget_range),
        )
    lo, hi = parsed
    return AutoQuote(
        amount=round((lo + hi) / 2, 2), method="customer_budget",
        breakdown=BudgetBreakdown(budget_range=budget_range, budget_min=lo, budget_max=hi),
    )

def pricing_config_quote(config, details, is_emergency: bool) -> AutoQuote:
    base = max(0.0, _num(config.base_rate))
    per_km = max(0.0, _num(config.per_km_rate))
    minimum = max(0.0, _num(config.minimum_fee))
    km = estimate_distance_km(details)
    mult = urgency_multiplier(config.urgency_multipliers, is_emergency)

    distance_cost = km * per_km
    total = (base + distance_cost) * mult
    if total < minimum:
        total = minimum
    total = round(total, 2)

    return AutoQuote(
        amount=total, method="pricing_config",
        breakdown=PricingBreakdown(
            base_rate=base, estimated_distance_km=km, per_km_rate=per_km,
            distance_cost=round(distance_cost, 2), urgency_multiplier=mult,
            minimum_fee=minimum, total=total,
        ),
    )

def compute_auto_quote(config, request) -> AutoQuote:
    """Suggested quote for ``request`` given the operator's ``config`` (or None).

    ``request`` needs service_type, is_emergency, details and budget_range.
    A result with ``insufficient=True`` carries amount 0 and must not be sent.
    """
    if config is None:
        return budget_midpoint_quote(request.budget_range)
    details = request.details
    if details is None or isinstance(details, dict):
        details = details_for(request.service_type, details)
    return pricing_config_quote(config, details, bool(request.is_emergency))

def find_config(configs, tier, service_type):
    """Pick the config for (tier, service_type) out of an operator's list."""
    for c in configs or []:
        if _tier_value(c.tier) == _tier_value(tier) and c.service_type == service_type:
            return c
    return None

def _tier_value(tier):
    return getattr(tier, "value", tier)
