from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum as PyEnum


class FuelType(str, PyEnum):
    E10 = "E10"
    E85 = "E85"
    GPLC = "GPLc"
    GAZOLE = "Gazole"
    SP95 = "SP95"
    SP98 = "SP98"

    @property
    def field_prefix(self) -> str:
        # Opendatasoft flattens prices as "<fuel>_prix" / "<fuel>_maj"
        return self.value.lower()


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float


@dataclass
class FuelPrice:
    price: float | None
    updated_at: datetime | None = None


@dataclass
class Station:
    id: str
    postal_code: str = ""
    address: str = ""
    town: str = ""
    region: str | None = None
    department: str | None = None
    # Either a decoded [lat, lon] pair or fixed-point strings ("4620114" = 46.20114)
    geom: tuple[float, float] | None = None
    latitude: str | None = None
    longitude: str | None = None
    fuel_prices: dict[FuelType, FuelPrice] = field(default_factory=dict)
    available_fuels: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)
    automate_24_24: bool = False
    brand: str | None = None
    brand_source: str | None = None
    distance_km: float | None = None

    def price_for(self, fuel_type: FuelType) -> float | None:
        entry = self.fuel_prices.get(fuel_type)
        if entry is None:
            return None
        return entry.price


@dataclass(frozen=True)
class OSMStation:
    osm_id: int
    lat: float
    lon: float
    brand: str | None = None
    operator: str | None = None
    name: str | None = None
    brand_wikidata: str | None = None

    @property
    def display_name(self) -> str | None:
        # the wikidata id is an identifier, never a label
        return self.brand or self.operator or self.name


@dataclass
class NearbySearchResult:
    center: Coordinates
    fuel_type: FuelType
    radius_km: float
    stations: list[Station]

    @property
    def found(self) -> bool:
        return bool(self.stations)
