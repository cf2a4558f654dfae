"""Tests for OSM brand enrichment."""

import asyncio
import logging

import pytest
import requests

from factories import PARIS, FakeOverpass, FakeResponse, FakeSession, make_station, north_of_m, unavailable
from fuelfinder.cache import TTLCache
from fuelfinder.config import Settings
from fuelfinder.enrichment import (
    BRAND_SOURCE_OSM,
    BrandEnricher,
    BrandEnrichmentDispatcher,
    match_brands,
)
from fuelfinder.errors import UpstreamUnavailableError
from fuelfinder.models import Coordinates, OSMStation
from fuelfinder.osm import OverpassClient, osm_station_from_element


def poi(meters: float, osm_id: int = 1, **tags) -> OSMStation:
    point = north_of_m(PARIS, meters)
    return OSMStation(osm_id=osm_id, lat=point.lat, lon=point.lon, **tags)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestMatchBrands:
    def test_match_at_80_meters(self):
        enriched = match_brands([make_station("a", km=0)], [poi(80, brand="TotalEnergies")], 100)
        assert enriched[0].brand == "TotalEnergies"
        assert enriched[0].brand_source == BRAND_SOURCE_OSM

    def test_no_match_at_150_meters(self):
        enriched = match_brands([make_station("a", km=0)], [poi(150, brand="Esso")], 100)
        assert enriched[0].brand is None
        assert enriched[0].brand_source is None

    def test_nearest_point_wins(self):
        candidates = [poi(60, osm_id=1, brand="Far"), poi(20, osm_id=2, brand="Near")]
        enriched = match_brands([make_station("a", km=0)], candidates, 100)
        assert enriched[0].brand == "Near"

    def test_nearest_beyond_threshold_means_no_match(self):
        enriched = match_brands([make_station("a", km=0)], [poi(120, brand="Shell")], 100)
        assert enriched[0].brand is None

    @pytest.mark.parametrize(
        "tags,expected",
        [
            ({"brand": "Avia", "operator": "SARL Martin", "name": "Relais"}, "Avia"),
            ({"operator": "SARL Martin", "name": "Relais"}, "SARL Martin"),
            ({"name": "Relais"}, "Relais"),
            ({"brand_wikidata": "Q154037", "operator": "TotalEnergies"}, "TotalEnergies"),
        ],
    )
    def test_brand_operator_name_preference(self, tags, expected):
        enriched = match_brands([make_station("a", km=0)], [poi(10, **tags)], 100)
        assert enriched[0].brand == expected

    def test_existing_brand_kept_without_match(self):
        station = make_station("a", km=0, brand="Intermarché")
        enriched = match_brands([station], [poi(500, brand="Shell")], 100)
        assert enriched[0].brand == "Intermarché"

    def test_existing_brand_kept_when_match_is_anonymous(self):
        station = make_station("a", km=0, brand="Intermarché")
        enriched = match_brands([station], [poi(10)], 100)
        assert enriched[0].brand == "Intermarché"

    def test_station_without_position_untouched(self):
        station = make_station("a", km=None)
        assert match_brands([station], [poi(0, brand="Shell")], 100)[0] is station

    def test_originals_not_modified(self):
        station = make_station("a", km=0)
        match_brands([station], [poi(10, brand="Shell")], 100)
        assert station.brand is None


class TestBrandEnricher:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    def enricher(self, client, clock):
        return BrandEnricher(client, TTLCache(86400, clock=clock), radius_m=10000, threshold_m=100)

    def test_enriches(self, clock):
        client = FakeOverpass([poi(50, brand="Leclerc")])
        stations = [make_station("a", km=0), make_station("b", km=3)]
        enriched = asyncio.run(self.enricher(client, clock).enrich(stations, PARIS))
        assert [s.brand for s in enriched] == ["Leclerc", None]
        assert client.calls == [(PARIS.lat, PARIS.lon, 10000)]

    def test_network_error_returns_original(self, clock):
        stations = [make_station("a", km=0)]
        enricher = self.enricher(FakeOverpass(error=unavailable()), clock)
        assert asyncio.run(enricher.enrich(stations, PARIS)) is stations

    def test_unexpected_error_returns_original(self, clock):
        stations = [make_station("a", km=0)]
        enricher = self.enricher(FakeOverpass(error=RuntimeError("bad payload")), clock)
        assert asyncio.run(enricher.enrich(stations, PARIS)) is stations

    def test_empty_area_returns_original(self, clock):
        stations = [make_station("a", km=0)]
        assert asyncio.run(self.enricher(FakeOverpass([]), clock).enrich(stations, PARIS)) is stations

    def test_empty_list_skips_lookup(self, clock):
        client = FakeOverpass([poi(0, brand="Shell")])
        assert asyncio.run(self.enricher(client, clock).enrich([], PARIS)) == []
        assert client.calls == []

    def test_cached_by_rounded_center(self, clock):
        client = FakeOverpass([poi(0, brand="Shell")])
        enricher = self.enricher(client, clock)
        stations = [make_station("a", km=0)]

        asyncio.run(enricher.enrich(stations, PARIS))
        asyncio.run(enricher.enrich(stations, Coordinates(PARIS.lat + 0.0001, PARIS.lon - 0.0001)))
        assert len(client.calls) == 1

        asyncio.run(enricher.enrich(stations, Coordinates(PARIS.lat + 0.01, PARIS.lon)))
        assert len(client.calls) == 2

    def test_cache_expires_after_a_day(self, clock):
        client = FakeOverpass([poi(0, brand="Shell")])
        enricher = self.enricher(client, clock)
        stations = [make_station("a", km=0)]

        asyncio.run(enricher.enrich(stations, PARIS))
        clock.now = 86399
        asyncio.run(enricher.enrich(stations, PARIS))
        assert len(client.calls) == 1
        clock.now = 86400
        asyncio.run(enricher.enrich(stations, PARIS))
        assert len(client.calls) == 2

    def test_failures_not_cached(self, clock):
        client = FakeOverpass(error=unavailable())
        enricher = self.enricher(client, clock)
        asyncio.run(enricher.enrich([make_station("a", km=0)], PARIS))
        client.error = None
        client.stations = [poi(0, brand="Shell")]
        enriched = asyncio.run(enricher.enrich([make_station("a", km=0)], PARIS))
        assert enriched[0].brand == "Shell"


class GatedEnricher:
    """Enricher whose results are released on demand, per search center."""

    def __init__(self):
        self.gates: dict[Coordinates, asyncio.Event] = {}

    async def enrich(self, stations, center):
        gate = self.gates.setdefault(center, asyncio.Event())
        await gate.wait()
        return [s for s in stations]

    def release(self, center):
        self.gates.setdefault(center, asyncio.Event()).set()


class TestBrandEnrichmentDispatcher:
    def test_delivers_update(self):
        async def scenario():
            updates = []

            async def on_update(search_id, stations):
                updates.append((search_id, [s.id for s in stations]))

            enricher = BrandEnricher(FakeOverpass([poi(0, brand="Shell")]), TTLCache(60))
            dispatcher = BrandEnrichmentDispatcher(enricher)
            task = dispatcher.submit("s1", [make_station("a", km=0)], PARIS, on_update)
            assert await task is True
            return updates

        assert asyncio.run(scenario()) == [("s1", ["a"])]

    def test_superseded_search_discarded(self):
        older_center = PARIS
        newer_center = Coordinates(45.7640, 4.8357)

        async def scenario():
            updates = []

            async def on_update(search_id, stations):
                updates.append(search_id)

            enricher = GatedEnricher()
            dispatcher = BrandEnrichmentDispatcher(enricher)
            older = dispatcher.submit("old", [make_station("a")], older_center, on_update)
            newer = dispatcher.submit("new", [make_station("b")], newer_center, on_update)

            enricher.release(newer_center)
            assert await newer is True
            enricher.release(older_center)
            assert await older is False
            return updates

        assert asyncio.run(scenario()) == ["new"]

    def test_failed_search_supersedes_pending_enrichment(self):
        async def scenario():
            updates = []

            async def on_update(search_id, stations):
                updates.append(search_id)

            enricher = GatedEnricher()
            dispatcher = BrandEnrichmentDispatcher(enricher)
            older = dispatcher.submit("old", [make_station("a")], PARIS, on_update)
            dispatcher.supersede("failed")
            enricher.release(PARIS)
            assert await older is False
            return updates

        assert asyncio.run(scenario()) == []

    def test_failing_update_is_logged(self, caplog):
        async def scenario():
            async def on_update(search_id, stations):
                raise RuntimeError("socket closed")

            dispatcher = BrandEnrichmentDispatcher(BrandEnricher(FakeOverpass([]), TTLCache(60)))
            task = dispatcher.submit("s1", [make_station("a", km=0)], PARIS, on_update)
            await asyncio.gather(task, return_exceptions=True)
            await asyncio.sleep(0)
            return dispatcher.pending

        with caplog.at_level(logging.ERROR, logger="fuelfinder.enrichment"):
            assert asyncio.run(scenario()) == 0
        assert "Brand enrichment update failed" in caplog.text

    def test_aclose_cancels_pending(self):
        async def scenario():
            async def on_update(search_id, stations):
                raise AssertionError("should not be called")

            dispatcher = BrandEnrichmentDispatcher(GatedEnricher())
            task = dispatcher.submit("s1", [make_station("a")], PARIS, on_update)
            await asyncio.sleep(0)
            assert dispatcher.pending == 1
            await dispatcher.aclose()
            return task.cancelled(), dispatcher.pending

        assert asyncio.run(scenario()) == (True, 0)


class TestOverpassClient:
    def test_parses_nodes_and_ways(self):
        payload = {
            "elements": [
                {"type": "node", "id": 1, "lat": 48.85, "lon": 2.35, "tags": {"amenity": "fuel", "brand": "Total"}},
                {"type": "way", "id": 2, "center": {"lat": 48.86, "lon": 2.36}, "tags": {"operator": "Carrefour"}},
                {"type": "way", "id": 3, "tags": {"name": "broken"}},
            ]
        }
        session = FakeSession([FakeResponse(payload=payload)])
        stations = OverpassClient(Settings(), session=session).fuel_stations(48.85, 2.35, 10000)
        assert [s.osm_id for s in stations] == [1, 2]
        assert stations[0].display_name == "Total"
        assert stations[1].display_name == "Carrefour"
        assert "around:10000,48.85,2.35" in session.requests[0][1]["params"]["data"]

    def test_brand_wikidata_is_not_a_label(self):
        station = osm_station_from_element(
            {"id": 5, "lat": 1.0, "lon": 2.0, "tags": {"brand:wikidata": "Q154037", "operator": "TotalEnergies"}}
        )
        assert station.brand is None
        assert station.brand_wikidata == "Q154037"
        assert station.display_name == "TotalEnergies"

    def test_wikidata_only_has_no_display_name(self):
        station = osm_station_from_element({"id": 6, "lat": 1.0, "lon": 2.0, "tags": {"brand:wikidata": "Q154037"}})
        assert station.display_name is None

    def test_http_error(self):
        session = FakeSession([FakeResponse(status_code=429)])
        with pytest.raises(UpstreamUnavailableError):
            OverpassClient(Settings(), session=session).fuel_stations(48.85, 2.35, 10000)

    def test_timeout(self):
        session = FakeSession([requests.Timeout("slow")])
        with pytest.raises(UpstreamUnavailableError):
            OverpassClient(Settings(), session=session).fuel_stations(48.85, 2.35, 10000)
