"""
Cache key construction.

Keys are built from a canonical encoding of every parameter that affects a
result, so two requests that mean the same thing share a key and requests that
differ in any value never do.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

NEARBY_PREFIX = "offers:nearby:"
NEARBY_PATTERN = NEARBY_PREFIX + "*"


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime):
        # One instant, one key, whatever offset it arrived in
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    return value


def canonical_json(params: Mapping[str, Any]) -> str:
    """Stable JSON text: sorted keys, normalized numbers and datetimes, no whitespace."""
    return json.dumps(_normalize(params), sort_keys=True, separators=(",", ":"))


def nearby_key(params: Mapping[str, Any]) -> str:
    digest = hashlib.sha1(canonical_json(params).encode("utf-8")).hexdigest()
    return f"{NEARBY_PREFIX}{digest}"


def business_offers_key(business_id) -> str:
    return f"business:offers:{business_id}"


def rider_offers_key(rider_id) -> str:
    return f"rider:offers:{rider_id}"


def business_stats_key(business_id) -> str:
    return f"business:stats:{business_id}"


def rider_stats_key(rider_id) -> str:
    return f"rider:stats:{rider_id}"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def auth_email_key(email: str) -> str:
    return f"user:auth:email:{normalize_email(email)}"
