# playsafe/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    # Firebase connection parameters (the same six values the web client uses)
    FIREBASE_API_KEY: str | None = os.getenv("FIREBASE_API_KEY")
    FIREBASE_AUTH_DOMAIN: str | None = os.getenv("FIREBASE_AUTH_DOMAIN")
    FIREBASE_PROJECT_ID: str | None = os.getenv("FIREBASE_PROJECT_ID")
    FIREBASE_STORAGE_BUCKET: str | None = os.getenv("FIREBASE_STORAGE_BUCKET")
    FIREBASE_MESSAGING_SENDER_ID: str | None = os.getenv("FIREBASE_MESSAGING_SENDER_ID")
    FIREBASE_APP_ID: str | None = os.getenv("FIREBASE_APP_ID")

    FIREBASE_SERVICE_ACCOUNT_PATH: str = os.getenv(
        "FIREBASE_SERVICE_ACCOUNT_PATH",
        "firebase-service-account.json",
    )

    # Session cookie (signed JWT replacing the old plain-text role cookie)
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "playsafe_session")
    SESSION_EXPIRE_DAYS: int = int(os.getenv("SESSION_EXPIRE_DAYS", "7"))
    SESSION_COOKIE_SECURE: bool = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Route guard
    PROTECTED_ROUTES: list = _csv(os.getenv(
        "PROTECTED_ROUTES",
        "/dashboard,/notifications,/admin,/citizen,/maintenance,/report,/status,/playground",
    ))
    AUTH_ROUTES: list = _csv(os.getenv("AUTH_ROUTES", "/login,/register"))
    LOGIN_PATH: str = os.getenv("LOGIN_PATH", "/login")

    # Workflow
    # Admin "mark resolved" without assignment. Off until product confirms it.
    ALLOW_DIRECT_RESOLVE: bool = os.getenv("ALLOW_DIRECT_RESOLVE", "false").lower() == "true"

    # Photo evidence
    MAX_REPORT_PHOTOS: int = int(os.getenv("MAX_REPORT_PHOTOS", "3"))
    MAX_COMPLETION_PHOTOS: int = int(os.getenv("MAX_COMPLETION_PHOTOS", "5"))
    PHOTO_MAX_EDGE: int = int(os.getenv("PHOTO_MAX_EDGE", "800"))
    PHOTO_BYTE_BUDGET: int = int(os.getenv("PHOTO_BYTE_BUDGET", "1000000"))

    # Playground directory
    NEARBY_PLAYGROUND_LIMIT: int = int(os.getenv("NEARBY_PLAYGROUND_LIMIT", "5"))
    ACTIVE_ISSUES_REFRESH_MINUTES: int = int(os.getenv("ACTIVE_ISSUES_REFRESH_MINUTES", "15"))
    ENABLE_SCHEDULER: bool = os.getenv("ENABLE_SCHEDULER", "true").lower() == "true"

    # Local timezone for "today" on dashboards and display dates
    # Set via environment variable: TZ_OFFSET=5.5 for UTC+5:30, etc.
    TZ_OFFSET: float = float(os.getenv("TZ_OFFSET", "5.5"))

    CORS_ORIGINS: list = _csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))


settings = Settings()

REQUIRED_FIREBASE_KEYS = (
    "FIREBASE_API_KEY",
    "FIREBASE_AUTH_DOMAIN",
    "FIREBASE_PROJECT_ID",
    "FIREBASE_STORAGE_BUCKET",
    "FIREBASE_MESSAGING_SENDER_ID",
    "FIREBASE_APP_ID",
)


def missing_firebase_keys() -> list:
    return [key for key in REQUIRED_FIREBASE_KEYS if not getattr(settings, key)]


def assert_firebase_config_ready():
    """Call at process start; every Firebase connection parameter is required."""
    missing = missing_firebase_keys()
    if missing:
        raise RuntimeError(
            "Firebase configuration is incomplete. Missing: "
            + ", ".join(missing)
            + ". Set them in .env or the process environment."
        )
