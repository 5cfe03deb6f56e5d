from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
import math

from ..models.database_models import Playground

EARTH_RADIUS_MILES = 3959


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in miles between two coordinate pairs."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def format_distance(distance: Optional[float]) -> Optional[str]:
    if distance is None:
        return None
    if distance < 0.1:
        return "< 0.1 mi"
    # Half-up so 1.25 reads "1.3 mi" regardless of binary float representation
    rounded = Decimal(repr(distance)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return f"{rounded} mi"


def parse_coordinates(location: str) -> Optional[Tuple[float, float]]:
    """Parse a ``"lat, lon"`` location string; None for free-text addresses."""
    parts = [p.strip() for p in (location or "").split(",")]
    if len(parts) != 2:
        return None
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


def nearest(origin: Optional[Tuple[float, float]], playgrounds: List[Playground],
            limit: Optional[int] = None) -> List[Playground]:
    """
    Playgrounds sorted by distance from ``origin``, annotated with ``distance``.

    Without an origin (location denied or timed out) the list is returned in
    stored order, unannotated, cut to ``limit``.
    """
    if origin is None:
        return playgrounds[:limit] if limit else list(playgrounds)

    lat, lon = origin
    annotated = [
        p.model_copy(update={"distance": haversine_miles(lat, lon, p.latitude, p.longitude)})
        for p in playgrounds
    ]
    annotated.sort(key=lambda p: p.distance)
    return annotated[:limit] if limit else annotated
