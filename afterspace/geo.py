"""Geohash cells and great-circle distance for venue proximity search."""
import math
from typing import List

import pygeohash as gh

from afterspace.errors import InvalidInputError

EARTH_RADIUS_KM = 6371
DEFAULT_PRECISION = 6  # ~1.2km x 0.6km cells


def validate_coordinates(lat, lng) -> None:
    if lat is None or lng is None:
        raise InvalidInputError("latitude and longitude are required")
    if isinstance(lat, bool) or isinstance(lng, bool):
        raise InvalidInputError("latitude and longitude must be numbers")
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise InvalidInputError("latitude and longitude must be numbers") from None
    if math.isnan(lat) or math.isnan(lng):
        raise InvalidInputError("latitude and longitude must be numbers")
    if not -90.0 <= lat <= 90.0:
        raise InvalidInputError(f"latitude {lat} outside [-90, 90]")
    if not -180.0 <= lng <= 180.0:
        raise InvalidInputError(f"longitude {lng} outside [-180, 180]")


def cell_of(lat: float, lng: float, precision: int = DEFAULT_PRECISION) -> str:
    validate_coordinates(lat, lng)
    return gh.encode(float(lat), float(lng), precision=precision)


def neighbors_of(lat: float, lng: float, precision: int = DEFAULT_PRECISION) -> List[str]:
    """Return the cell holding the point followed by its 8 grid neighbours.

    Near the poles some neighbours coincide, so the list is de-duplicated
    and may hold fewer than nine cells there.
    """
    center = cell_of(lat, lng, precision)
    top = gh.get_adjacent(center, "top")
    bottom = gh.get_adjacent(center, "bottom")
    cells = [
        center,
        top,
        bottom,
        gh.get_adjacent(center, "left"),
        gh.get_adjacent(center, "right"),
        gh.get_adjacent(top, "left"),
        gh.get_adjacent(top, "right"),
        gh.get_adjacent(bottom, "left"),
        gh.get_adjacent(bottom, "right"),
    ]
    return list(dict.fromkeys(cells))


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
