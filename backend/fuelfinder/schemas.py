from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from fuelfinder.models import FuelType


class PriceResponse(BaseModel):
    fuel_type: FuelType
    price: float
    update_date: datetime | None

    model_config = ConfigDict(from_attributes=True)


class StationResponse(BaseModel):
    id: str
    address: str | None
    city: str | None
    cp: str | None
    region: str | None = None
    department: str | None = None
    latitude: float | None
    longitude: float | None
    distance: float | None = None
    brand: str | None = None
    brand_source: str | None = None
    available_fuels: list[str] = []
    services: list[str] = []
    automate_24_24: bool = False
    prices: list[PriceResponse]
    navigation: dict[str, str] | None = None

    model_config = ConfigDict(from_attributes=True)


class CenterResponse(BaseModel):
    lat: float
    lon: float


class NearbyStationsResponse(BaseModel):
    search_id: str
    center: CenterResponse
    fuel_type: FuelType
    radius_km: float
    stations: list[StationResponse]
    message: str | None = None


class PriceTrendResponse(BaseModel):
    fuel_type: FuelType
    days: int
    labels: list[str]
    prices: list[float]
    trend_line: list[float]
    trend: str
    station_count: int
    message: str | None = None

    model_config = ConfigDict(from_attributes=True)
