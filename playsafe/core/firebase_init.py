"""
Firebase Admin SDK bootstrap.

The app is initialised once per process, on first use or at start-up,
from the service-account file named in settings. Without that file it
falls back to Application Default Credentials when the environment
provides them (GOOGLE_APPLICATION_CREDENTIALS or a GCP runtime).
"""

import logging
import os

import firebase_admin
from firebase_admin import credentials

from .config import settings

logger = logging.getLogger(__name__)


class FirebaseUnavailableError(RuntimeError):
    pass


def _load_credentials():
    path = settings.FIREBASE_SERVICE_ACCOUNT_PATH
    if path and os.path.exists(path):
        return credentials.Certificate(path)
    if os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        logger.info("[Firebase] Using application default credentials")
        return credentials.ApplicationDefault()
    logger.warning(f"[Firebase] Service account file not found at {path}")
    return None


def initialize_firebase() -> bool:
    """Initialise the default app if needed. Returns False when no credentials are usable."""
    if firebase_admin._apps:
        return True

    try:
        cred = _load_credentials()
        if cred is None:
            return False
        firebase_admin.initialize_app(cred, {
            'projectId': settings.FIREBASE_PROJECT_ID,
            'storageBucket': settings.FIREBASE_STORAGE_BUCKET,
        })
        logger.info(f"✅ Firebase initialized for project {settings.FIREBASE_PROJECT_ID}")
        return True
    except Exception as e:
        logger.error(f"❌ Firebase initialization failed: {e}")
        return False


def is_firebase_available() -> bool:
    return bool(firebase_admin._apps)


def require_firebase():
    """Initialise on demand for the auth and database layers; raises when Firebase cannot start."""
    if not is_firebase_available() and not initialize_firebase():
        raise FirebaseUnavailableError("Firebase is not initialized - check the service account configuration")


def get_firebase_status() -> dict:
    return {
        "available": is_firebase_available(),
        "project_id": settings.FIREBASE_PROJECT_ID,
        "service_account_path": settings.FIREBASE_SERVICE_ACCOUNT_PATH,
    }
