from __future__ import annotations

import asyncio

from fuelfinder.feed import StationFeed
from fuelfinder.models import FuelType, NearbySearchResult
from fuelfinder.ranking import find_nearby_stations
from fuelfinder.resolver import GeoApiClient, resolve_center


async def search_nearby(
    feed: StationFeed,
    geocoder: GeoApiClient,
    fuel_type: FuelType,
    postal_code: str | None = None,
    lat: float | None = None,
    lon: float | None = None,
) -> NearbySearchResult:
    """Resolve the center then rank; enrichment is left to the caller."""
    if postal_code is None:
        # fail on bad device coordinates before touching the feed
        center = resolve_center([], geocoder, lat=lat, lon=lon)
        stations = await asyncio.to_thread(feed.get_stations)
    else:
        stations = await asyncio.to_thread(feed.get_stations)
        center = await asyncio.to_thread(resolve_center, stations, geocoder, postal_code)
    return find_nearby_stations(center, fuel_type, stations)
