from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import logging

from .firebase_auth import firebase_auth
from .session import decode_session_token
from ..core.config import settings
from ..models.user import UserProfile
from ..services.identity_service import identity_service

security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


def _user_from_claims(claims: dict) -> dict:
    return {
        "uid": claims.get("uid") or claims.get("sub"),
        "email": claims.get("email"),
        "role": claims.get("role"),
    }


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    """
    Authenticate the caller from a Bearer token (session JWT or Firebase ID
    token) or from the session cookie. Raises 401 if none is valid.
    """
    if credentials:
        token = credentials.credentials
        claims = decode_session_token(token)
        if claims:
            return _user_from_claims(claims)

        id_token = await firebase_auth.verify_token(token)
        if id_token:
            profile = await identity_service.resolve(id_token.get("uid"))
            if not profile:
                logger.warning(f"[Auth] No profile for authenticated uid {id_token.get('uid')}")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="No PlaySafe profile exists for this account",
                )
            return {"uid": profile.uid, "email": profile.email, "role": profile.role.value}

        logger.warning("[Auth] Bearer token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = decode_session_token(request.cookies.get(settings.SESSION_COOKIE_NAME))
    if claims:
        return _user_from_claims(claims)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_profile(current_user: dict = Depends(get_current_user)) -> UserProfile:
    """The caller's stored profile; 403 when the session outlived its profile."""
    profile = await identity_service.resolve(current_user.get("uid"))
    if not profile:
        logger.warning(f"[Auth] Session for {current_user.get('uid')} has no profile")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No PlaySafe profile exists for this account",
        )
    return profile


def require_role(required_roles: list):
    def role_checker(current_user: UserProfile = Depends(get_current_profile)):
        user_role = current_user.role.value
        if user_role not in required_roles:
            logger.warning(f"[Auth] Role check failed: user role '{user_role}' not in required roles {required_roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {required_roles}, current role: {user_role}"
            )
        return current_user
    return role_checker


require_admin = require_role(["admin"])
require_citizen = require_role(["citizen"])
require_maintenance = require_role(["maintenance"])
