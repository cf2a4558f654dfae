from __future__ import annotations


class FuelFinderError(Exception):
    """Base class for every failure surfaced by the fuelfinder pipeline."""

    status_code = 500
    error = "Something went wrong!"


class InvalidPostalCodeError(FuelFinderError, ValueError):
    status_code = 400
    error = "Invalid postal code"


class InvalidCoordinatesError(FuelFinderError, ValueError):
    status_code = 400
    error = "Invalid coordinates"


class LocationNotFoundError(FuelFinderError):
    status_code = 404
    error = "Location not found"


class UpstreamUnavailableError(FuelFinderError):
    status_code = 502
    error = "Upstream service unavailable"


class FeedFormatError(FuelFinderError):
    status_code = 502
    error = "Failed to fetch fuel prices"
