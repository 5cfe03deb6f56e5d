"""
Request-time route guard for the role views.

Protected paths need a valid session cookie; the login and register pages
bounce an already signed-in user to their role's home. Which role may see
which view is decided by the ``require_role`` dependencies, not here.
"""

from typing import Optional
from urllib.parse import quote
import logging

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..auth.session import decode_session_token
from ..core.config import settings
from ..models.user import home_path_for_role

logger = logging.getLogger(__name__)

# API, websocket and static traffic never goes through the guard
EXCLUDED_PREFIXES = ("/api", "/ws", "/static", "/_next", "/docs", "/redoc", "/openapi.json")
EXCLUDED_PATHS = ("/favicon.ico", "/health")


def is_excluded(path: str) -> bool:
    if path in EXCLUDED_PATHS:
        return True
    return any(path == prefix or path.startswith(prefix + "/") for prefix in EXCLUDED_PREFIXES)


def is_protected(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in settings.PROTECTED_ROUTES)


def is_auth_route(path: str) -> bool:
    return path in settings.AUTH_ROUTES


def classify_request(path: str, claims: Optional[dict]) -> Optional[str]:
    """
    Decide what to do with a request. Returns the redirect target, or None
    to let the request through. ``claims`` are the verified session claims
    (None for a missing, forged or expired cookie).
    """
    if is_excluded(path):
        return None
    if is_protected(path) and not claims:
        return f"{settings.LOGIN_PATH}?redirect={quote(path, safe='/')}"
    if is_auth_route(path) and claims:
        return home_path_for_role(claims.get("role"))
    return None


class RouteGuardMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if is_excluded(path):
            return await call_next(request)

        claims = decode_session_token(request.cookies.get(settings.SESSION_COOKIE_NAME))
        target = classify_request(path, claims)
        if target:
            logger.info(f"[Guard] {path} -> {target}")
            return RedirectResponse(url=target, status_code=307)
        return await call_next(request)
