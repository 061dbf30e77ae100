"""WebSocket authentication middleware: JWT in the querystring, session cookie otherwise."""

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
def get_user_for_token(raw_token: str):
    """Resolve a simplejwt access token to an active user, or AnonymousUser."""
    try:
        access = AccessToken(raw_token)
    except TokenError as exc:
        logger.debug("WebSocket JWT rejected: %s", exc)
        return AnonymousUser()

    User = get_user_model()
    user = User.objects.filter(id=access.get("user_id"), is_active=True).first()
    return user or AnonymousUser()


class JWTOrCookieAuthMiddleware(BaseMiddleware):
    """
    Authenticate WebSocket connections using either:
    1. JWT in querystring (?token=...) - mobile driver/passenger apps
    2. The user already resolved by AuthMiddlewareStack (session cookie) - browsers
    """

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get("query_string", b"").decode())
        token_list = params.get("token")

        if token_list:
            scope["user"] = await get_user_for_token(token_list[0])
        elif "user" not in scope:
            scope["user"] = AnonymousUser()

        return await super().__call__(scope, receive, send)
