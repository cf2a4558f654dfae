"""Turn a postal code or a device position into a search center."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable

import requests

from fuelfinder.config import Settings
from fuelfinder.distance import parse_coordinates
from fuelfinder.errors import (
    InvalidCoordinatesError,
    InvalidPostalCodeError,
    LocationNotFoundError,
    UpstreamUnavailableError,
)
from fuelfinder.models import Coordinates, Station

logger = logging.getLogger(__name__)

POSTAL_CODE_RE = re.compile(r"[0-9]{5}")


class GeoApiClient:
    """geo.api.gouv.fr communes lookup by postal code."""

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.url = settings.geocoding_url
        self.timeout = settings.http_timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", settings.user_agent)

    def commune_centers(self, postal_code: str) -> list[Coordinates]:
        params = {
            "codePostal": postal_code,
            "fields": "centre",
            "format": "json",
            "geometry": "centre",
        }
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            communes = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise UpstreamUnavailableError(f"Failed to geocode postal code {postal_code}: {exc}") from exc

        centers: list[Coordinates] = []
        for commune in communes or []:
            try:
                # GeoJSON order: [lon, lat]
                lon, lat = commune["centre"]["coordinates"][:2]
                centers.append(Coordinates(float(lat), float(lon)))
            except (KeyError, TypeError, ValueError):
                continue
        return centers


def validate_postal_code(postal_code: str | None) -> str:
    value = "" if postal_code is None else str(postal_code).strip()
    if not POSTAL_CODE_RE.fullmatch(value):
        raise InvalidPostalCodeError("Please enter a valid 5-digit postal code")
    return value


def resolve_postal_code(
    postal_code: str | None,
    stations: Iterable[Station],
    geocoder: GeoApiClient,
) -> Coordinates:
    postal_code = validate_postal_code(postal_code)

    for station in stations:
        if station.postal_code != postal_code:
            continue
        coords = parse_coordinates(station)
        if coords is not None:
            logger.debug("Postal code %s centered on station %s", postal_code, station.id)
            return coords

    try:
        centers = geocoder.commune_centers(postal_code)
    except UpstreamUnavailableError as exc:
        raise LocationNotFoundError(f"Postal code {postal_code} not found") from exc
    if not centers:
        raise LocationNotFoundError(f"Postal code {postal_code} not found")

    logger.info("Postal code %s geocoded to %s", postal_code, centers[0])
    return centers[0]


def resolve_device_location(lat: float | None, lon: float | None) -> Coordinates:
    if lat is None or lon is None:
        raise InvalidCoordinatesError("Geolocation is not available")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinatesError("Geolocation returned non-finite coordinates")
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise InvalidCoordinatesError(f"Coordinates out of range: {lat}, {lon}")
    return Coordinates(lat, lon)


def resolve_center(
    stations: Iterable[Station],
    geocoder: GeoApiClient,
    postal_code: str | None = None,
    lat: float | None = None,
    lon: float | None = None,
) -> Coordinates:
    """Postal code wins when given; otherwise the device position is used as-is."""
    if postal_code is not None:
        return resolve_postal_code(postal_code, stations, geocoder)
    return resolve_device_location(lat, lon)
