"""WebSocket authentication middleware for JWT-based auth."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


@database_sync_to_async
def _get_active_user(user_id):
    User = get_user_model()
    return User.objects.filter(id=user_id, is_active=True).first() or AnonymousUser()


class JWTAuthMiddleware(BaseMiddleware):
    """
    Authenticate WebSocket connections with a JWT access token in the
    querystring (?token=...). Anything else connects as anonymous.
    """

    async def __call__(self, scope, receive, send):
        query_string = scope.get("query_string", b"").decode()
        params = parse_qs(query_string)

        scope["user"] = AnonymousUser()
        token_list = params.get("token")
        if token_list:
            try:
                access = AccessToken(token_list[0])
                scope["user"] = await _get_active_user(access["user_id"])
            except (TokenError, KeyError) as e:
                logger.debug("JWT auth failed: %s", e)

        return await super().__call__(scope, receive, send)
