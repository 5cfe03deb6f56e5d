"""
Signed session cookies.

The route guard and the role-gated views read the caller's role from a
short JWT set at login instead of trusting a plain-text role cookie.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from jose import JWTError, jwt

from ..core.config import settings

logger = logging.getLogger(__name__)


def create_session_token(uid: str, email: str, role: str,
                         expires_in: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_in or timedelta(days=settings.SESSION_EXPIRE_DAYS))
    payload = {
        "sub": uid,
        "uid": uid,
        "email": email,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_session_token(token: Optional[str]) -> Optional[dict]:
    """Return the session claims, or None when the token is missing, forged or expired."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.info(f"[Session] Rejected session token: {e}")
        return None
    if not claims.get("role") or not claims.get("uid"):
        return None
    return claims


def session_max_age() -> int:
    return settings.SESSION_EXPIRE_DAYS * 24 * 60 * 60
