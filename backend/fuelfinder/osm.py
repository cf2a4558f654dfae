from __future__ import annotations

import logging
from typing import Any

import requests

from fuelfinder.config import Settings
from fuelfinder.errors import UpstreamUnavailableError
from fuelfinder.models import OSMStation

logger = logging.getLogger(__name__)

OVERPASS_QUERY = """
[out:json][timeout:25];
(
  node["amenity"="fuel"](around:{radius},{lat},{lon});
  way["amenity"="fuel"](around:{radius},{lat},{lon});
);
out body center;
"""


def osm_station_from_element(element: dict[str, Any]) -> OSMStation | None:
    tags = element.get("tags") or {}
    # ways only have a computed center
    coords = element.get("center") or element
    try:
        lat, lon = float(coords["lat"]), float(coords["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    return OSMStation(
        osm_id=element.get("id", 0),
        lat=lat,
        lon=lon,
        brand=tags.get("brand"),
        operator=tags.get("operator"),
        name=tags.get("name"),
        brand_wikidata=tags.get("brand:wikidata"),
    )


class OverpassClient:
    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.url = settings.overpass_url
        self.timeout = settings.http_timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", settings.user_agent)

    def fuel_stations(self, lat: float, lon: float, radius: int) -> list[OSMStation]:
        query = OVERPASS_QUERY.format(radius=radius, lat=lat, lon=lon)
        try:
            response = self.session.get(self.url, params={"data": query}, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise UpstreamUnavailableError(f"Overpass API error: {exc}") from exc

        stations = []
        for element in data.get("elements") or []:
            station = osm_station_from_element(element)
            if station is not None:
                stations.append(station)
        logger.info("Overpass returned %d fuel stations around %.3f,%.3f", len(stations), lat, lon)
        return stations
