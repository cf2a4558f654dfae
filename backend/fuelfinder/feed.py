from __future__ import annotations

import io
import logging
import zipfile
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import requests
from lxml import etree as ET

from fuelfinder.cache import TTLCache
from fuelfinder.config import Settings
from fuelfinder.errors import FeedFormatError, UpstreamUnavailableError
from fuelfinder.models import FuelPrice, FuelType, Station

logger = logging.getLogger(__name__)


def _get(session: requests.Session, url: str, timeout: float, **kwargs: Any) -> requests.Response:
    try:
        response = session.get(url, timeout=timeout, **kwargs)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise UpstreamUnavailableError(f"GET {url} failed: {exc}") from exc
    return response


def _parse_update_date(value: str | None) -> datetime | None:
    if not value:
        return None
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    # Search API timestamps carry an offset, the XML feed's are naive local times
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_price(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# Instantane ZIP/XML feed


def _iter_pdv(xml_file: Any) -> Iterable[ET._Element]:
    for _, elem in ET.iterparse(xml_file, events=("end",), tag="pdv"):
        yield elem
        elem.clear()
        while elem.getprevious() is not None:
            del elem.getparent()[0]


def station_from_pdv(pdv: ET._Element) -> Station:
    fuel_prices: dict[FuelType, FuelPrice] = {}
    for price_elem in pdv.findall("prix"):
        try:
            fuel_type = FuelType(price_elem.get("nom") or "")
        except ValueError:
            continue
        price = _parse_price(price_elem.get("valeur"))
        if price is None:
            continue
        fuel_prices[fuel_type] = FuelPrice(price, _parse_update_date(price_elem.get("maj")))

    horaires = pdv.find("horaires")
    return Station(
        id=pdv.get("id") or "",
        postal_code=(pdv.get("cp") or "").strip(),
        address=(pdv.findtext("adresse") or "").strip(),
        town=(pdv.findtext("ville") or "").strip(),
        latitude=pdv.get("latitude") or None,
        longitude=pdv.get("longitude") or None,
        fuel_prices=fuel_prices,
        available_fuels=[fuel.value for fuel in fuel_prices],
        services=[s.text.strip() for s in pdv.iterfind("services/service") if s.text],
        automate_24_24=horaires is not None and horaires.get("automate-24-24") == "1",
    )


def parse_instantane_zip(zip_bytes: bytes) -> list[Station]:
    stations: list[Station] = []
    try:
        zf = zipfile.ZipFile(io.BytesIO(zip_bytes))
    except zipfile.BadZipFile as exc:
        raise FeedFormatError("Price feed is not a ZIP archive") from exc

    with zf:
        xml_names = [name for name in zf.namelist() if name.endswith(".xml")]
        if not xml_names:
            raise FeedFormatError("No XML file found in the ZIP")

        with zf.open(xml_names[0]) as xml_file:
            try:
                for pdv in _iter_pdv(xml_file):
                    station = station_from_pdv(pdv)
                    if station.id:
                        stations.append(station)
            except ET.XMLSyntaxError as exc:
                raise FeedFormatError(f"Malformed XML in {xml_names[0]}: {exc}") from exc

    logger.info("Parsed %d stations from %s", len(stations), xml_names[0])
    return stations


# Opendatasoft search API


def station_from_record(fields: dict[str, Any]) -> Station:
    fuel_prices: dict[FuelType, FuelPrice] = {}
    for fuel_type in FuelType:
        prefix = fuel_type.field_prefix
        if f"{prefix}_prix" not in fields:
            continue
        fuel_prices[fuel_type] = FuelPrice(
            _parse_price(fields.get(f"{prefix}_prix")),
            _parse_update_date(fields.get(f"{prefix}_maj")),
        )

    available = fields.get("carburants_disponibles") or []
    if isinstance(available, str):
        available = [fuel.strip() for fuel in available.split(",") if fuel.strip()]

    geom = fields.get("geom")
    if isinstance(geom, dict):
        geom = (geom.get("lat"), geom.get("lon"))

    return Station(
        id=str(fields.get("id") or ""),
        postal_code=str(fields.get("cp") or "").strip(),
        address=(fields.get("adresse") or "").strip(),
        town=(fields.get("ville") or "").strip(),
        region=fields.get("region"),
        department=fields.get("departement"),
        geom=tuple(geom) if isinstance(geom, (list, tuple)) and len(geom) == 2 else None,
        latitude=str(fields["latitude"]) if fields.get("latitude") else None,
        longitude=str(fields["longitude"]) if fields.get("longitude") else None,
        fuel_prices=fuel_prices,
        available_fuels=list(available),
    )


class OpendatasoftClient:
    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.url = settings.opendatasoft_url
        self.dataset = settings.opendatasoft_dataset
        self.rows = settings.opendatasoft_rows
        self.timeout = settings.http_timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", settings.user_agent)

    def search(
        self,
        refine: dict[str, str] | None = None,
        rows: int | None = None,
        facets: Iterable[str] = (),
    ) -> dict[str, Any]:
        params: list[tuple[str, Any]] = [
            ("dataset", self.dataset),
            ("rows", self.rows if rows is None else rows),
        ]
        params.extend(("facet", facet) for facet in facets)
        for field_name, value in (refine or {}).items():
            params.append((f"refine.{field_name}", value))

        response = _get(self.session, self.url, self.timeout, params=params)
        try:
            payload = response.json()
        except ValueError as exc:
            raise FeedFormatError("Search API returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise FeedFormatError("Search API returned an unexpected payload")
        return payload

    def stations(self, refine: dict[str, str] | None = None) -> list[Station]:
        payload = self.search(refine)
        stations = [
            station_from_record(record.get("fields") or {})
            for record in payload.get("records") or []
        ]
        logger.info("Search API returned %d stations", len(stations))
        return stations

    def facet_values(self, facet: str, refine: dict[str, str] | None = None) -> list[str]:
        payload = self.search(refine, rows=0, facets=[facet])
        for group in payload.get("facet_groups") or []:
            if group.get("name") == facet:
                return sorted(item["name"] for item in group.get("facets") or [] if item.get("name"))
        return []


def _matches(value: str | None, wanted: str | None) -> bool:
    if not wanted:
        return True
    return (value or "").casefold() == wanted.casefold()


class StationFeed:
    """Current stations from the configured source, cached for ``feed_cache_ttl``."""

    def __init__(
        self,
        settings: Settings,
        cache: TTLCache | None = None,
        session: requests.Session | None = None,
        search_client: OpendatasoftClient | None = None,
    ) -> None:
        self.source = settings.feed_source
        self.instantane_url = settings.instantane_url
        self.timeout = settings.http_timeout
        self.cache = cache or TTLCache(settings.feed_cache_ttl)
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", settings.user_agent)
        self.search_client = search_client or OpendatasoftClient(settings, self.session)

    def _download_zip(self) -> bytes:
        logger.info("Downloading fuel price dataset")
        return _get(self.session, self.instantane_url, self.timeout).content

    def _cached(self, key: tuple, load: Callable[[], list[Station]]) -> list[Station]:
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Returning cached fuel prices data")
            return cached
        stations = load()
        self.cache.set(key, stations)
        return stations

    def get_stations(
        self,
        region: str | None = None,
        department: str | None = None,
        town: str | None = None,
    ) -> list[Station]:
        if self.source == "opendatasoft":
            refine = {
                key: value
                for key, value in (("region", region), ("departement", department), ("ville", town))
                if value
            }
            return self._cached(
                (self.source, region, department, town),
                lambda: self.search_client.stations(refine),
            )

        # one download serves every filter; the XML feed has no region/department
        stations = self._cached((self.source,), lambda: parse_instantane_zip(self._download_zip()))
        if not (region or department or town):
            return stations
        return [
            station
            for station in stations
            if _matches(station.region, region)
            and _matches(station.department, department)
            and _matches(station.town, town)
        ]
