from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from playsafe.core.config import settings, assert_firebase_config_ready
from playsafe.core.firebase_init import initialize_firebase, get_firebase_status
from playsafe.core.scheduler import start_scheduler, stop_scheduler
from playsafe.middleware.route_guard import RouteGuardMiddleware

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PlaySafe API",
    description="Playground issue reporting, triage and maintenance tracking",
    version="1.0.0"
)

app.add_middleware(RouteGuardMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 FastAPI startup event triggered")
    assert_firebase_config_ready()

    logger.info("🔥 Initializing Firebase...")
    if not get_firebase_status()['available']:
        if initialize_firebase():
            logger.info("✅ Firebase initialized successfully")
        else:
            logger.warning("⚠️ Firebase initialization failed - app will run without Firebase features")

    if settings.ENABLE_SCHEDULER:
        start_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("⛔ FastAPI shutdown event triggered")
    stop_scheduler()


def safe_include_router(router_module_path: str, router_name: str = "router"):
    """Safely include a router with error handling"""
    try:
        module = __import__(router_module_path, fromlist=[router_name])
        router = getattr(module, router_name)
        app.include_router(router)
        logger.info(f"✅ Successfully included {router_module_path}")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to include {router_module_path}: {str(e)}", exc_info=True)
        return False


logger.info("Loading routers...")

routers_to_load = [
    ("playsafe.routers.auth", "Authentication"),
    ("playsafe.routers.issues", "Issues"),
    ("playsafe.routers.assignments", "Assignments"),
    ("playsafe.routers.playgrounds", "Playgrounds"),
    ("playsafe.routers.notifications", "Notifications"),
    ("playsafe.routers.websocket", "WebSocket"),
    ("playsafe.routers.views", "Views"),
]

successful_routers = []
failed_routers = []

for router_path, router_description in routers_to_load:
    if safe_include_router(router_path):
        successful_routers.append(router_description)
    else:
        failed_routers.append(router_description)

logger.info(f"Successfully loaded routers: {successful_routers}")
if failed_routers:
    logger.warning(f"Failed to load routers: {failed_routers}")


@app.get("/health")
async def health_check():
    firebase_status = get_firebase_status()
    return {
        "status": "healthy",
        "firebase_available": firebase_status['available'],
        "project_id": firebase_status.get('project_id'),
        "loaded_routers": successful_routers,
        "failed_routers": failed_routers,
    }
