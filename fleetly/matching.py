# --- fleetly/matching.py ----------------------------------------------------
# Decide which operators get to see a service request.
#
# Pure over snapshots: anything with the Operator attributes (tier, home_lat,
# home_lng, operating_radius_km, is_online, services) works, ORM rows included.

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .geo import coerce_point, haversine_km
from .tiers import tier_info

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperatorMatch:
    operator: object
    distance_km: Optional[float]


def effective_radius_km(tier, operator_radius=None) -> Optional[float]:
    """Radius an operator is matched within; None means unlimited.

    Professional operators are never radius-limited. Manual and equipped
    operators use their own radius when set, capped at the tier maximum,
    otherwise the tier default.
    """
    info = tier_info(tier)
    if info["radius_km"] is None:
        return None
    if operator_radius is None:
        return info["radius_km"]
    return min(float(operator_radius), info["radius_max_km"])


def offers_service(operator, service_type: str) -> bool:
    wanted = (service_type or "").strip().lower()
    return any((s or "").strip().lower() == wanted for s in (operator.services or []))


def match_operator(operator, request_point, service_type: str) -> Optional[OperatorMatch]:
    """Return an OperatorMatch if ``operator`` may see the request, else None."""
    if not operator.is_online or not offers_service(operator, service_type):
        return None

    home = coerce_point(operator.home_lat, operator.home_lng)
    if home is None:
        # Unknown home location excludes the operator, whatever the tier
        logger.debug(
            "Operator %s skipped: no usable home coordinates (%r, %r)",
            getattr(operator, "id", None), operator.home_lat, operator.home_lng,
        )
        return None

    radius = effective_radius_km(operator.tier, operator.operating_radius_km)
    distance = None
    if request_point is not None:
        distance = haversine_km(home[0], home[1], request_point[0], request_point[1])

    if radius is None:
        return OperatorMatch(operator, distance)
    if distance is None:
        # Radius tiers cannot place a request without coordinates
        logger.debug("Operator %s skipped: request has no usable coordinates", getattr(operator, "id", None))
        return None
    if distance > radius:
        return None
    return OperatorMatch(operator, distance)


def match_operators(request, operators: Iterable) -> List[OperatorMatch]:
    """Filter ``operators`` down to those eligible for ``request``.

    Order follows the input; sorting for display is up to the caller.
    """
    point = coerce_point(request.latitude, request.longitude)
    if point is None:
        logger.info(
            "Request %s has no usable coordinates; only unlimited-radius operators match",
            getattr(request, "id", None),
        )
    matches = []
    for op in operators:
        m = match_operator(op, point, request.service_type)
        if m is not None:
            matches.append(m)
    return matches


def by_distance(matches: List[OperatorMatch]) -> List[OperatorMatch]:
    """Nearest first; matches with unknown distance go last."""
    return sorted(matches, key=lambda m: (m.distance_km is None, m.distance_km or 0.0))
