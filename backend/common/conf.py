"""
Access to the dispatch engine tunables.

All knobs live in one ``DISPATCH`` dict in Django settings; anything not set
there falls back to the defaults below.
"""

from django.conf import settings

DEFAULTS = {
    # Cache coherency layer
    "CACHE_BACKEND": "redis",               # redis | locmem | dummy
    "CACHE_KEY_PREFIX": "lastmile:",
    "CACHE_REDIS_URL": "redis://localhost:6379/1",
    "CACHE_TTL": {
        "nearby_offers": 180,               # 3 min
        "offer_lists": 300,                 # 5 min
        "identity": 1800,                   # 30 min
        "dashboard": 900,                   # 15 min
    },
    "CACHE_SWEEP_TIME_BUDGET": 5,
    "CACHE_SWEEP_INTERVAL": 60,

    # Nearby search
    "SEARCH_DEFAULT_MAX_DISTANCE": 10000,   # meters
    "SEARCH_MAX_DISTANCE": 100000,          # meters
    "SEARCH_DEFAULT_LIMIT": 20,
    "SEARCH_MAX_LIMIT": 50,
    "SEARCH_TIMEOUT_SECONDS": 5,
    "LOCATION_PRECISION": 5,                # decimal places (~1m)

    # Geocoding collaborator
    "GEOCODER": "common.geocoding.NominatimGeocoder",
    "GEOCODER_URL": "https://nominatim.openstreetmap.org/search",
    "GEOCODER_TIMEOUT": 5.0,

    "DEFAULT_VEHICLE_TYPE": "bike",
}


def get_setting(name: str):
    """Return a DISPATCH setting, falling back to the built-in default."""
    overrides = getattr(settings, "DISPATCH", {}) or {}
    if name == "CACHE_TTL":
        return {**DEFAULTS["CACHE_TTL"], **overrides.get("CACHE_TTL", {})}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]


def get_ttl(path: str) -> int:
    return int(get_setting("CACHE_TTL")[path])
