from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Sequence
from functools import cmp_to_key

from fuelfinder.distance import distance_to
from fuelfinder.models import Coordinates, FuelType, NearbySearchResult, Station

logger = logging.getLogger(__name__)

PRIMARY_RADIUS_KM = 50.0
FALLBACK_RADIUS_KM = 100.0
MIN_RESULTS = 5
MAX_RESULTS = 10
# Stations closer than this to each other are ordered by price instead
DISTANCE_TIE_KM = 5.0
PRICE_EPSILON = 0.001
# Ordering-only stand-in for a missing price, never returned
MISSING_PRICE = 999.0


def _has_price(station: Station, fuel_type: FuelType) -> bool:
    return station.price_for(fuel_type) is not None


def _sort_price(station: Station, fuel_type: FuelType) -> float:
    price = station.price_for(fuel_type)
    return MISSING_PRICE if price is None else price


def _within(stations: Sequence[Station], fuel_type: FuelType, radius_km: float) -> list[Station]:
    return [s for s in stations if s.distance_km <= radius_km and _has_price(s, fuel_type)]


def rank_stations(stations: Sequence[Station], fuel_type: FuelType) -> list[Station]:
    """Order by distance, letting price decide between stations within DISTANCE_TIE_KM."""

    def compare(a: Station, b: Station) -> int:
        distance_diff = a.distance_km - b.distance_km
        if abs(distance_diff) > DISTANCE_TIE_KM:
            return -1 if distance_diff < 0 else 1
        price_diff = _sort_price(a, fuel_type) - _sort_price(b, fuel_type)
        if abs(price_diff) > PRICE_EPSILON:
            return -1 if price_diff < 0 else 1
        if distance_diff:
            return -1 if distance_diff < 0 else 1
        return 0

    by_distance = sorted(stations, key=lambda s: s.distance_km)
    return sorted(by_distance, key=cmp_to_key(compare))


def find_nearby_stations(
    center: Coordinates,
    fuel_type: FuelType,
    all_stations: Iterable[Station],
) -> NearbySearchResult:
    # Copies: the caller's (possibly cached) stations are never annotated in place
    measured = [
        dataclasses.replace(station, distance_km=distance_to(center, station))
        for station in all_stations
    ]

    radius_km = PRIMARY_RADIUS_KM
    candidates = _within(measured, fuel_type, radius_km)
    if len(candidates) < MIN_RESULTS:
        radius_km = FALLBACK_RADIUS_KM
        candidates = _within(measured, fuel_type, radius_km)

    ranked = rank_stations(candidates, fuel_type)[:MAX_RESULTS]
    if not ranked:
        logger.info("No %s stations found within %.0f km of %s", fuel_type.value, radius_km, center)
    else:
        logger.debug("Ranked %d %s stations within %.0f km", len(ranked), fuel_type.value, radius_km)

    return NearbySearchResult(center=center, fuel_type=fuel_type, radius_km=radius_km, stations=ranked)
