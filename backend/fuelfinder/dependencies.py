from __future__ import annotations

from functools import lru_cache

from fuelfinder.cache import TTLCache
from fuelfinder.config import settings
from fuelfinder.enrichment import BrandEnricher
from fuelfinder.feed import OpendatasoftClient, StationFeed
from fuelfinder.osm import OverpassClient
from fuelfinder.resolver import GeoApiClient


@lru_cache(maxsize=1)
def get_search_client() -> OpendatasoftClient:
    return OpendatasoftClient(settings)


@lru_cache(maxsize=1)
def get_station_feed() -> StationFeed:
    return StationFeed(settings, search_client=get_search_client())


@lru_cache(maxsize=1)
def get_geocoder() -> GeoApiClient:
    return GeoApiClient(settings)


@lru_cache(maxsize=1)
def get_brand_enricher() -> BrandEnricher:
    return BrandEnricher(
        OverpassClient(settings),
        TTLCache(settings.osm_cache_ttl),
        radius_m=settings.osm_radius_m,
        threshold_m=settings.brand_match_threshold_m,
    )
