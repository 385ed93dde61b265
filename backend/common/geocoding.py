"""
Geocoder collaborator.

Only used when a business creates an offer without coordinates for one of its
addresses. The concrete client is picked from ``DISPATCH["GEOCODER"]`` so tests
and deployments can swap it out.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import requests
from django.utils.module_loading import import_string

from common.conf import get_setting
from services.offer_management.exceptions import GeocodingFailedError

logger = logging.getLogger(__name__)


class BaseGeocoder:
    def geocode(self, address: str) -> List[float]:
        """Return ``[longitude, latitude]`` for an address or raise GeocodingFailedError."""
        raise NotImplementedError


class NominatimGeocoder(BaseGeocoder):
    """OpenStreetMap Nominatim search client."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = base_url or get_setting("GEOCODER_URL")
        self.timeout = timeout if timeout is not None else float(get_setting("GEOCODER_TIMEOUT"))

    def geocode(self, address: str) -> List[float]:
        if not address or not address.strip():
            raise GeocodingFailedError("Address is empty")

        try:
            response = requests.get(
                self.base_url,
                params={"q": address, "format": "json", "limit": 1},
                headers={"User-Agent": "lastmile-dispatch/1.0"},
                timeout=(3.0, self.timeout),
            )
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Geocoding request failed for %r: %s", address, exc)
            raise GeocodingFailedError(f"Unable to geocode address: {address}") from exc

        if not results:
            raise GeocodingFailedError(f"No match found for address: {address}")

        first = results[0]
        return [float(first["lon"]), float(first["lat"])]


class NullGeocoder(BaseGeocoder):
    """Geocoder for deployments without one: every lookup fails."""

    def geocode(self, address: str) -> List[float]:
        raise GeocodingFailedError(f"Geocoding is not configured (address: {address})")


def get_geocoder() -> BaseGeocoder:
    return import_string(get_setting("GEOCODER"))()
