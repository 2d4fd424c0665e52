"""
geo.py — Great-circle distance between two GPS fixes.

Used by duplicate detection to decide whether two incident reports describe
the same spot. Incidents are matched within a few hundred metres, so the
spherical Haversine model is accurate enough; no ellipsoid correction and
no special handling of poles or antipodal points.
"""

import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Distance in kilometres between (lat1, lon1) and (lat2, lon2), in degrees.

    Callers must only pass present coordinates; a missing value is not
    special-cased here.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))
