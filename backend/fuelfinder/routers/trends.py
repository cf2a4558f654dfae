from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Query

from fuelfinder.dependencies import get_search_client, get_station_feed
from fuelfinder.feed import OpendatasoftClient, StationFeed
from fuelfinder.models import FuelType
from fuelfinder.schemas import PriceTrendResponse
from fuelfinder.trends import compute_price_trend

router = APIRouter(prefix="/api")


@router.get("/trends", response_model=PriceTrendResponse)
async def price_trends(
    fuel_type: FuelType = FuelType.GAZOLE,
    days: int = Query(90, gt=0, le=3650),
    region: str | None = None,
    departement: str | None = None,
    ville: str | None = None,
    feed: StationFeed = Depends(get_station_feed),
) -> PriceTrendResponse:
    stations = await asyncio.to_thread(feed.get_stations, region, departement, ville)
    trend = compute_price_trend(stations, fuel_type, days)
    return PriceTrendResponse.model_validate(trend)


@router.get("/regions", response_model=list[str])
async def list_regions(client: OpendatasoftClient = Depends(get_search_client)) -> list[str]:
    return await asyncio.to_thread(client.facet_values, "region")


@router.get("/departments/{region}", response_model=list[str])
async def list_departments(
    region: str, client: OpendatasoftClient = Depends(get_search_client)
) -> list[str]:
    return await asyncio.to_thread(client.facet_values, "departement", {"region": region})


@router.get("/towns/{department}", response_model=list[str])
async def list_towns(
    department: str, client: OpendatasoftClient = Depends(get_search_client)
) -> list[str]:
    return await asyncio.to_thread(client.facet_values, "ville", {"departement": department})
