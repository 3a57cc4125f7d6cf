# --- fleetly/tiers.py -------------------------------------------------------
# Operator tier table: radius ceilings and pricing multipliers.

from .models import OperatorTier

TIERS = {
    OperatorTier.manual: {
        "label": "Manual Operator",
        "description": "On-foot with basic equipment (shovels, snow blowers)",
        "radius_km": 5.0,
        "radius_max_km": 8.0,
        "pricing_multiplier": 0.6,
    },
    OperatorTier.equipped: {
        "label": "Skilled & Equipped",
        "description": "Have trucks/vehicles but no formal certification",
        "radius_km": 15.0,
        "radius_max_km": 50.0,
        "pricing_multiplier": 1.0,
    },
    OperatorTier.professional: {
        "label": "Professional & Certified",
        "description": "Licensed business with professional equipment and certification",
        "radius_km": None,  # unlimited
        "radius_max_km": None,
        "pricing_multiplier": 1.5,
    },
}


def tier_info(tier) -> dict:
    return TIERS[OperatorTier(tier)]
