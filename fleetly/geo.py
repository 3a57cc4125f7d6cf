# --- fleetly/geo.py ---------------------------------------------------------
# Great-circle distance; shared by operator matching and anything else
# that needs "how far apart are these two points".

import math

EARTH_RADIUS_KM = 6371.0

def haversine_km(lat1, lon1, lat2, lon2):
    R=EARTH_RADIUS_KM; to=math.pi/180.0
    dlat=(lat2-lat1)*to; dlon=(lon2-lon1)*to
    a=math.sin(dlat/2)**2+math.cos(lat1*to)*math.cos(lat2*to)*math.sin(dlon/2)**2
    return 2*R*math.atan2(math.sqrt(a), math.sqrt(1-a))

def coerce_coordinate(value, limit=180.0):
    """Return a finite float within [-limit, limit], or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(v) or abs(v) > limit:
        return None
    return v

def coerce_point(lat, lng):
    """Both coordinates valid -> (lat, lng); otherwise None."""
    la = coerce_coordinate(lat, 90.0)
    lo = coerce_coordinate(lng, 180.0)
    if la is None or lo is None:
        return None
    return (la, lo)
