from firebase_admin import auth
from typing import Optional
import logging

import httpx

from ..core.config import settings
from ..core.firebase_init import require_firebase

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts"

# Firebase REST error codes -> messages shown to the user
SIGN_IN_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "No account found with this email address.",
    "INVALID_PASSWORD": "Incorrect password.",
    "INVALID_LOGIN_CREDENTIALS": "Incorrect password.",
    "INVALID_EMAIL": "Invalid email address.",
    "USER_DISABLED": "This account has been disabled.",
}

SIGN_UP_ERROR_MESSAGES = {
    "EMAIL_EXISTS": "An account with this email address already exists.",
    "INVALID_EMAIL": "Invalid email address.",
    "WEAK_PASSWORD": "Password should be at least 6 characters.",
    "CONFIGURATION_NOT_FOUND": (
        "Firebase Authentication is not enabled. Please enable Email/Password "
        "authentication in your Firebase console."
    ),
}


class AuthenticationError(Exception):
    """Sign-in or sign-up failure carrying a user-facing message."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


def map_auth_error(code: Optional[str], messages: dict, fallback: str) -> str:
    if not code:
        return fallback
    # REST codes may carry detail after a colon, e.g. "WEAK_PASSWORD : ..."
    key = code.split(":")[0].strip()
    return messages.get(key, code or fallback)


class FirebaseAuth:
    async def verify_token(self, token: str) -> Optional[dict]:
        try:
            require_firebase()
            return auth.verify_id_token(token)
        except Exception as e:
            logger.warning(f"[Auth] Token verification failed: {e}")
            return None

    async def sign_in_with_password(self, email: str, password: str) -> dict:
        """
        Verify email + password through the Identity Toolkit REST API.
        Returns {idToken, refreshToken, expiresIn, localId, ...}.
        """
        return await self._identity_toolkit(
            "signInWithPassword", email, password, SIGN_IN_ERROR_MESSAGES, "Failed to sign in"
        )

    async def sign_up_with_password(self, email: str, password: str) -> dict:
        return await self._identity_toolkit(
            "signUp", email, password, SIGN_UP_ERROR_MESSAGES, "Failed to create account"
        )

    async def _identity_toolkit(self, action: str, email: str, password: str,
                                messages: dict, fallback: str) -> dict:
        if not settings.FIREBASE_API_KEY:
            raise AuthenticationError("Invalid Firebase API key. Please check your configuration.")
        url = f"{IDENTITY_TOOLKIT_URL}:{action}?key={settings.FIREBASE_API_KEY}"
        payload = {"email": email, "password": password, "returnSecureToken": True}
        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.post(url, json=payload)
        if resp.status_code != 200:
            try:
                code = resp.json().get("error", {}).get("message")
            except ValueError:
                code = None
            logger.info(f"[Auth] {action} rejected for {email}: {code}")
            raise AuthenticationError(map_auth_error(code, messages, fallback), code)
        return resp.json()

    async def update_display_name(self, uid: str, display_name: str):
        try:
            require_firebase()
            auth.update_user(uid, display_name=display_name)
        except Exception as e:
            logger.warning(f"[Auth] Display name update failed for {uid}: {e}")

    async def get_user(self, uid: str):
        """Get user by UID"""
        try:
            require_firebase()
            return auth.get_user(uid)
        except Exception as e:
            logger.warning(f"[Auth] Get user failed: {e}")
            return None


firebase_auth = FirebaseAuth()
