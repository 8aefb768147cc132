# samartha/services/distance.py
from math import radians, sin, cos, asin, sqrt
from typing import Sequence

EARTH_RADIUS_KM = 6371.0

def haversine_km(lat1, lng1, lat2, lng2) -> float:
    dlat = radians(lat2 - lat1)
    dlng = radians(lng2 - lng1)
    a = sin(dlat/2)**2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlng/2)**2
    # clamp: rounding can push a just past 1 for antipodal points
    c = 2 * asin(sqrt(min(1.0, a)))
    return EARTH_RADIUS_KM * c

def distance_between(a: Sequence[float], b: Sequence[float]) -> float:
    """
    a, b: GeoJSON-ordered pairs [longitude, latitude]
    returns distance in km
    """
    return haversine_km(a[1], a[0], b[1], b[0])
