"""Great-circle distances and station coordinate decoding."""

from __future__ import annotations

import math

from fuelfinder.models import Coordinates, Station

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = 6371000.0

# Fixed-point feed coordinates: "4620114" -> 46.20114
COORDINATE_SCALE = 100000


def haversine_distance(
    lat1: float, lon1: float, lat2: float, lon2: float, radius: float = EARTH_RADIUS_KM
) -> float:
    """Distance between two GPS points, in the unit of ``radius`` (km by default)."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return radius * c


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_distance(lat1, lon1, lat2, lon2, radius=EARTH_RADIUS_M)


def _valid(lat: float, lon: float) -> bool:
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    if lat == 0 and lon == 0:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def parse_coordinates(station: Station) -> Coordinates | None:
    """
    Decode a station's position.

    The search API ships a ``geom`` [lat, lon] pair; the XML feed (and older
    records) only carry fixed-point latitude/longitude strings. Returns None
    when neither yields a usable point.
    """
    if station.geom is not None:
        try:
            lat, lon = float(station.geom[0]), float(station.geom[1])
        except (TypeError, ValueError, IndexError):
            lat = lon = math.nan
        if _valid(lat, lon):
            return Coordinates(lat, lon)

    if station.latitude and station.longitude:
        try:
            lat = float(station.latitude) / COORDINATE_SCALE
            lon = float(station.longitude) / COORDINATE_SCALE
        except ValueError:
            return None
        if _valid(lat, lon):
            return Coordinates(lat, lon)

    return None


def distance_to(center: Coordinates, station: Station) -> float:
    """Kilometres from ``center`` to the station, infinite if it has no usable position."""
    coords = parse_coordinates(station)
    if coords is None:
        return math.inf
    return haversine_distance(center.lat, center.lon, coords.lat, coords.lon)
