from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="FUELFINDER_", env_file=".env", extra="ignore")

    feed_source: Literal["instantane", "opendatasoft"] = "instantane"
    instantane_url: str = "https://donnees.roulez-eco.fr/opendata/instantane"
    opendatasoft_url: str = "https://data.economie.gouv.fr/api/records/1.0/search/"
    opendatasoft_dataset: str = "prix-des-carburants-en-france-flux-instantane-v2"
    opendatasoft_rows: int = 10000
    geocoding_url: str = "https://geo.api.gouv.fr/communes"
    overpass_url: str = "https://overpass-api.de/api/interpreter"

    user_agent: str = "FuelFinder/1.0"
    http_timeout: float = 60.0

    # seconds
    feed_cache_ttl: int = 300
    osm_cache_ttl: int = 24 * 60 * 60

    osm_radius_m: int = 10000
    brand_match_threshold_m: float = 100.0

    preload_feed: bool = False
    log_level: str = "INFO"


settings = Settings()
