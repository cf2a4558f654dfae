#!/usr/bin/env python3
"""
Script pour trouver les stations essence autour d'un code postal ou d'une position.
Utilise les données Open Data du gouvernement français.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from fuelfinder.config import settings
from fuelfinder.dependencies import get_brand_enricher, get_geocoder, get_station_feed
from fuelfinder.errors import FuelFinderError
from fuelfinder.models import FuelType, NearbySearchResult, Station
from fuelfinder.search import search_nearby


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stations essence les plus proches et les moins chères")
    parser.add_argument("--cp", dest="postal_code", help="Code postal (5 chiffres)")
    parser.add_argument("--lat", type=float)
    parser.add_argument("--lon", type=float)
    parser.add_argument(
        "--carburant",
        default=FuelType.GAZOLE.value,
        choices=[fuel.value for fuel in FuelType],
    )
    parser.add_argument("--marques", action="store_true", help="Ajouter les marques OpenStreetMap")
    return parser.parse_args(argv)


def format_station_line(rank: int, station: Station, fuel_type: FuelType) -> str:
    price = station.price_for(fuel_type)
    brand = station.brand or "-"
    return (
        f"{rank:<5} {price:<10.3f} {station.distance_km:<10.2f} "
        f"{brand[:15]:<15} {station.town[:20]:<20} {station.address[:40]}"
    )


def print_result(result: NearbySearchResult) -> None:
    print(f"📍 Centre de recherche: {result.center.lat:.5f}, {result.center.lon:.5f}")
    if not result.found:
        print(f"\n❌ Aucune station trouvée avec du {result.fuel_type.value}")
        return

    print(f"\n✅ {len(result.stations)} stations dans un rayon de {result.radius_km:.0f}km\n")
    print("=" * 100)
    print(f"{'Rang':<5} {'Prix €/L':<10} {'Distance':<10} {'Marque':<15} {'Ville':<20} {'Adresse'}")
    print("=" * 100)
    for i, station in enumerate(result.stations, 1):
        print(format_station_line(i, station, result.fuel_type))
    print("=" * 100)


async def run(args: argparse.Namespace) -> NearbySearchResult:
    fuel_type = FuelType(args.carburant)
    result = await search_nearby(
        get_station_feed(), get_geocoder(), fuel_type, args.postal_code, args.lat, args.lon
    )
    if args.marques and result.found:
        result.stations = await get_brand_enricher().enrich(result.stations, result.center)
    return result


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    print(f"🔍 Chargement des prix ({settings.feed_source})...")
    try:
        result = asyncio.run(run(args))
    except FuelFinderError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    print_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
