"""
Authentication routes.

- Login: email + password verified through Firebase REST, then the caller's
  profile decides the role. The response sets a signed session cookie and
  also returns the token for Bearer use.
- Register: creates the Firebase account and exactly one profile.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..auth.dependencies import get_current_profile
from ..auth.firebase_auth import AuthenticationError, firebase_auth
from ..auth.session import session_max_age
from ..core.config import settings
from ..models.user import LoginRequest, RegisterRequest, UserProfile, home_path_for_role
from ..services.identity_service import IdentityError, identity_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["authentication"])


def _set_session_cookie(response: Response, token: str):
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=session_max_age(),
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def _session_payload(profile: UserProfile, token: str, message: str) -> Dict[str, Any]:
    return {
        "message": message,
        "access_token": token,
        "token_type": "Bearer",
        "uid": profile.uid,
        "email": profile.email,
        "role": profile.role.value,
        "redirect": home_path_for_role(profile.role.value),
        "profile": profile,
    }


@router.post("/login")
async def login(body: LoginRequest, response: Response) -> Dict[str, Any]:
    try:
        logger.info(f"[Auth] Login attempt: {body.email}")
        token_data = await firebase_auth.sign_in_with_password(body.email, body.password)
        uid = token_data.get("localId")
        if not uid:
            raise HTTPException(status_code=400, detail="Login failed: missing uid")

        profile = await identity_service.resolve(uid)
        if not profile:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No PlaySafe profile exists for this account. Please register first.",
            )

        token = identity_service.establish_session(profile)
        _set_session_cookie(response, token)
        logger.info(f"[Auth] {profile.email} signed in as {profile.role.value}")
        return _session_payload(profile, token, "login successful")

    except HTTPException:
        raise
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except Exception:
        logger.exception("[Auth] Email/password login failed")
        raise HTTPException(status_code=400, detail="Failed to sign in")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, response: Response) -> Dict[str, Any]:
    try:
        logger.info(f"[Auth] Registration request role={body.role.value} email={body.email}")
        account = await firebase_auth.sign_up_with_password(body.email, body.password)
        uid = account.get("localId")
        if not uid:
            raise HTTPException(status_code=400, detail="Registration failed: missing uid")

        await firebase_auth.update_display_name(uid, f"{body.firstName} {body.lastName}")
        profile = await identity_service.register(uid, body.email, body.firstName, body.lastName, body.role.value)

        token = identity_service.establish_session(profile)
        _set_session_cookie(response, token)
        return _session_payload(profile, token, f"{body.role.value.title()} registered successfully")

    except HTTPException:
        raise
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except IdentityError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except Exception as e:
        logger.exception("[Auth] Registration failed")
        raise HTTPException(status_code=500, detail=f"Failed to create account: {str(e)}")


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"message": "Signed out"}


@router.get("/me")
async def me(current_user: UserProfile = Depends(get_current_profile)):
    return {
        "profile": current_user,
        "redirect": home_path_for_role(current_user.role.value),
    }
