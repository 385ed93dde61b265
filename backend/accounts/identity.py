"""
Caller identity for the dispatch layer.

Views turn the authenticated request user into an ``Actor``; every dispatch
operation takes one explicitly instead of poking at ``request.user``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from rest_framework_simplejwt.tokens import RefreshToken

from services.caching import get_offer_cache
from services.caching.keys import normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    id: int
    role: str
    verified: bool = False

    @property
    def is_business(self) -> bool:
        return self.role == 'business'

    @property
    def is_rider(self) -> bool:
        return self.role == 'rider'


def actor_from_user(user) -> Actor:
    return Actor(id=user.id, role=user.role, verified=bool(user.is_verified))


def _load_identity(email: str) -> Optional[Dict[str, Any]]:
    User = get_user_model()
    user = User.objects.filter(email__iexact=email).first()
    if user is None:
        return None
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "is_verified": user.is_verified,
        "is_active": user.is_active,
        "password": user.password,
    }


def lookup_identity_by_email(email: str) -> Optional[Dict[str, Any]]:
    """Read-through cached auth lookup. Returns None for unknown emails."""
    email = normalize_email(email)
    if not email:
        return None
    return get_offer_cache().identity_by_email(email, lambda: _load_identity(email))


def issue_tokens(user_id: int) -> Dict[str, str]:
    """Mint a simplejwt token pair without loading the user row."""
    refresh = RefreshToken()
    refresh['user_id'] = user_id
    return {
        "refresh": str(refresh),
        "access": str(refresh.access_token),
    }
