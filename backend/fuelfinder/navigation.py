from __future__ import annotations

from urllib.parse import quote


def navigation_urls(lat: float, lon: float, label: str = "") -> dict[str, str]:
    encoded = quote(label, safe="")
    return {
        "google": f"https://www.google.com/maps/dir/?api=1&destination={lat},{lon}&destination_place_id={encoded}",
        "apple": f"http://maps.apple.com/?daddr={lat},{lon}&q={encoded}",
        "waze": f"https://waze.com/ul?ll={lat},{lon}&navigate=yes&q={encoded}",
        "default": f"https://www.google.com/maps/dir/?api=1&destination={lat},{lon}",
    }


def station_label(address: str, town: str, postal_code: str) -> str:
    return f"{address}, {town} {postal_code}".strip(", ")
