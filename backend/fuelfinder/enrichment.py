from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
from collections.abc import Awaitable, Callable, Sequence

from fuelfinder.cache import TTLCache
from fuelfinder.distance import haversine_meters, parse_coordinates
from fuelfinder.models import Coordinates, OSMStation, Station
from fuelfinder.osm import OverpassClient

logger = logging.getLogger(__name__)

BRAND_SOURCE_OSM = "osm"

UpdateCallback = Callable[[str, list[Station]], Awaitable[None]]


def nearest_osm_station(
    station: Station, candidates: Sequence[OSMStation], threshold_m: float
) -> OSMStation | None:
    coords = parse_coordinates(station)
    if coords is None:
        return None

    closest: OSMStation | None = None
    min_distance = math.inf
    for candidate in candidates:
        distance = haversine_meters(coords.lat, coords.lon, candidate.lat, candidate.lon)
        if distance < min_distance:
            min_distance = distance
            closest = candidate

    if closest is None or min_distance >= threshold_m:
        return None
    return closest


def match_brands(
    stations: Sequence[Station], candidates: Sequence[OSMStation], threshold_m: float
) -> list[Station]:
    """Copies of ``stations`` with brands taken from the nearest OSM point under ``threshold_m``."""
    enriched = []
    for station in stations:
        match = nearest_osm_station(station, candidates, threshold_m)
        if match is not None and match.display_name:
            station = dataclasses.replace(
                station, brand=match.display_name, brand_source=BRAND_SOURCE_OSM
            )
        enriched.append(station)
    return enriched


class BrandEnricher:
    def __init__(
        self,
        client: OverpassClient,
        cache: TTLCache,
        radius_m: int = 10000,
        threshold_m: float = 100.0,
    ) -> None:
        self.client = client
        self.cache = cache
        self.radius_m = radius_m
        self.threshold_m = threshold_m

    async def fetch_candidates(self, center: Coordinates) -> list[OSMStation]:
        key = (round(center.lat, 3), round(center.lon, 3), self.radius_m)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        candidates = await asyncio.to_thread(
            self.client.fuel_stations, center.lat, center.lon, self.radius_m
        )
        self.cache.set(key, candidates)
        return candidates

    async def enrich(self, stations: list[Station], center: Coordinates) -> list[Station]:
        """Never raises: any failure hands back ``stations`` untouched."""
        if not stations:
            return stations

        try:
            candidates = await self.fetch_candidates(center)
        except Exception:
            logger.exception("Error enriching stations around %s", center)
            return stations

        if not candidates:
            logger.info("No OSM stations found in area")
            return stations

        enriched = match_brands(stations, candidates, self.threshold_m)
        matched = sum(1 for s in enriched if s.brand_source == BRAND_SOURCE_OSM)
        logger.info("Matched %d/%d stations with OSM brands", matched, len(stations))
        return enriched


class BrandEnrichmentDispatcher:
    """
    Runs enrichment in the background and reports it as a follow-up update.

    Only the most recently submitted search may report: an enrichment that
    finishes after a newer search was submitted is dropped.
    """

    def __init__(self, enricher: BrandEnricher) -> None:
        self.enricher = enricher
        self.latest_search_id: str | None = None
        self._tasks: set[asyncio.Task] = set()

    def submit(
        self,
        search_id: str,
        stations: list[Station],
        center: Coordinates,
        on_update: UpdateCallback,
    ) -> asyncio.Task:
        self.latest_search_id = search_id
        task = asyncio.create_task(self._run(search_id, stations, center, on_update))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def supersede(self, search_id: str) -> None:
        """Mark ``search_id`` as the latest search without scheduling an enrichment."""
        self.latest_search_id = search_id

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Brand enrichment update failed", exc_info=exc)

    async def _run(
        self,
        search_id: str,
        stations: list[Station],
        center: Coordinates,
        on_update: UpdateCallback,
    ) -> bool:
        enriched = await self.enricher.enrich(stations, center)
        if search_id != self.latest_search_id:
            logger.debug("Discarding enrichment for superseded search %s", search_id)
            return False
        await on_update(search_id, enriched)
        return True

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
