from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from fuelfinder.dependencies import get_brand_enricher, get_geocoder, get_station_feed
from fuelfinder.distance import parse_coordinates
from fuelfinder.enrichment import BrandEnricher, BrandEnrichmentDispatcher
from fuelfinder.errors import FuelFinderError
from fuelfinder.feed import StationFeed
from fuelfinder.models import FuelType, NearbySearchResult, Station
from fuelfinder.navigation import navigation_urls, station_label
from fuelfinder.resolver import GeoApiClient
from fuelfinder.schemas import (
    CenterResponse,
    NearbyStationsResponse,
    PriceResponse,
    StationResponse,
)
from fuelfinder.search import search_nearby

logger = logging.getLogger(__name__)

router = APIRouter()

NO_STATIONS_MESSAGE = "no stations found"


def station_response(station: Station, with_navigation: bool = False) -> StationResponse:
    coords = parse_coordinates(station)
    navigation = None
    if with_navigation and coords is not None:
        label = station_label(station.address, station.town, station.postal_code)
        navigation = navigation_urls(coords.lat, coords.lon, label)

    return StationResponse(
        id=station.id,
        address=station.address,
        city=station.town,
        cp=station.postal_code,
        region=station.region,
        department=station.department,
        latitude=coords.lat if coords else None,
        longitude=coords.lon if coords else None,
        distance=station.distance_km,
        brand=station.brand,
        brand_source=station.brand_source,
        available_fuels=station.available_fuels,
        services=station.services,
        automate_24_24=station.automate_24_24,
        prices=[
            PriceResponse(fuel_type=fuel_type, price=entry.price, update_date=entry.updated_at)
            for fuel_type, entry in station.fuel_prices.items()
            if entry.price is not None
        ],
        navigation=navigation,
    )


def nearby_response(search_id: str, result: NearbySearchResult) -> NearbyStationsResponse:
    return NearbyStationsResponse(
        search_id=search_id,
        center=CenterResponse(lat=result.center.lat, lon=result.center.lon),
        fuel_type=result.fuel_type,
        radius_km=result.radius_km,
        stations=[station_response(s, with_navigation=True) for s in result.stations],
        message=None if result.found else NO_STATIONS_MESSAGE,
    )


@router.get("/api/fuel-prices", response_model=list[StationResponse])
async def list_fuel_prices(
    region: str | None = None,
    departement: str | None = None,
    ville: str | None = None,
    feed: StationFeed = Depends(get_station_feed),
) -> list[StationResponse]:
    stations = await asyncio.to_thread(feed.get_stations, region, departement, ville)
    return [station_response(station) for station in stations]


@router.get("/api/stations/nearby", response_model=NearbyStationsResponse)
async def nearby_stations(
    fuel_type: FuelType = FuelType.GAZOLE,
    postal_code: str | None = None,
    lat: float | None = None,
    lon: float | None = None,
    feed: StationFeed = Depends(get_station_feed),
    geocoder: GeoApiClient = Depends(get_geocoder),
) -> NearbyStationsResponse:
    result = await search_nearby(feed, geocoder, fuel_type, postal_code, lat, lon)
    return nearby_response(uuid.uuid4().hex, result)


@router.get("/api/stations/nearby/enriched", response_model=NearbyStationsResponse)
async def nearby_stations_enriched(
    fuel_type: FuelType = FuelType.GAZOLE,
    postal_code: str | None = None,
    lat: float | None = None,
    lon: float | None = None,
    feed: StationFeed = Depends(get_station_feed),
    geocoder: GeoApiClient = Depends(get_geocoder),
    enricher: BrandEnricher = Depends(get_brand_enricher),
) -> NearbyStationsResponse:
    result = await search_nearby(feed, geocoder, fuel_type, postal_code, lat, lon)
    result.stations = await enricher.enrich(result.stations, result.center)
    return nearby_response(uuid.uuid4().hex, result)


def _optional_float(value: object) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


@router.websocket("/ws/nearby")
async def nearby_stations_stream(
    websocket: WebSocket,
    feed: StationFeed = Depends(get_station_feed),
    geocoder: GeoApiClient = Depends(get_geocoder),
    enricher: BrandEnricher = Depends(get_brand_enricher),
) -> None:
    """
    One query per incoming message.

    Each query is answered with a ``ranked`` event right away, then with an
    ``enriched`` event carrying the same ``search_id`` once brands are known.
    A query superseded by a newer one never gets its ``enriched`` event.
    """
    await websocket.accept()
    dispatcher = BrandEnrichmentDispatcher(enricher)

    async def send_enriched(search_id: str, stations: list[Station]) -> None:
        await websocket.send_json(
            {
                "event": "enriched",
                "search_id": search_id,
                "stations": [
                    station_response(s, with_navigation=True).model_dump(mode="json")
                    for s in stations
                ],
            }
        )

    async def send_error(search_id: str, error: str, details: str) -> None:
        # a failed query still supersedes the previous one
        dispatcher.supersede(search_id)
        await websocket.send_json({"event": "error", "search_id": search_id, "error": error, "details": details})

    try:
        while True:
            try:
                query = await websocket.receive_json()
            except ValueError as exc:
                await send_error(uuid.uuid4().hex, "Invalid query", f"message is not JSON: {exc}")
                continue
            if not isinstance(query, dict):
                await send_error(uuid.uuid4().hex, "Invalid query", "expected an object")
                continue

            search_id = str(query.get("search_id") or uuid.uuid4().hex)
            try:
                fuel_type = FuelType(query.get("fuel_type") or FuelType.GAZOLE.value)
            except ValueError:
                await send_error(search_id, "Invalid fuel type", str(query.get("fuel_type")))
                continue

            try:
                result = await search_nearby(
                    feed,
                    geocoder,
                    fuel_type,
                    postal_code=query.get("postal_code"),
                    lat=_optional_float(query.get("lat")),
                    lon=_optional_float(query.get("lon")),
                )
            except FuelFinderError as exc:
                await send_error(search_id, exc.error, str(exc))
                continue

            response = nearby_response(search_id, result)
            await websocket.send_json({"event": "ranked", **response.model_dump(mode="json")})
            dispatcher.submit(search_id, result.stations, result.center, send_enriched)
    except WebSocketDisconnect:
        logger.debug("Nearby stream client disconnected")
    finally:
        await dispatcher.aclose()
