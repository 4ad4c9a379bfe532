import math
from typing import Tuple

from ..core.constants import FALLBACK_BOUNDS, MATCH_TOLERANCE_DEG

def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    R = 6371000.0
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * R * math.asin(math.sqrt(a))

def within_tolerance(lat1: float, lng1: float, lat2: float, lng2: float,
                     tolerance: float = MATCH_TOLERANCE_DEG) -> bool:
    """Per-axis degree window (strict), not a radius."""
    return abs(lat1 - lat2) < tolerance and abs(lng1 - lng2) < tolerance

def grid_cell(lat: float, lng: float, tolerance: float = MATCH_TOLERANCE_DEG) -> Tuple[int, int]:
    return math.floor(lat / tolerance), math.floor(lng / tolerance)

def in_fallback_bounds(lat: float, lng: float, bounds=FALLBACK_BOUNDS) -> bool:
    (south, west), (north, east) = bounds
    return south <= lat <= north and west <= lng <= east

def coerce_coords(lat, lng) -> Tuple[float, float]:
    """Float coordinates or ValueError; NaN/inf and out-of-range values are rejected."""
    try:
        flat, flng = float(lat), float(lng)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"non-numeric coordinates {lat!r}, {lng!r}")
    if not (math.isfinite(flat) and math.isfinite(flng)):
        raise ValueError(f"non-finite coordinates {lat!r}, {lng!r}")
    if not (-90.0 <= flat <= 90.0 and -180.0 <= flng <= 180.0):
        raise ValueError(f"out of range coordinates {flat}, {flng}")
    return flat, flng
