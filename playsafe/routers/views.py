"""
Role views. Each page of the web client gets its data from one of these
routes as a JSON view model. The route guard has already redirected
unauthenticated callers away from the protected paths.
"""

from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import logging

from ..auth.dependencies import get_current_profile, require_admin, require_citizen, require_maintenance
from ..core.config import settings
from ..models.database_models import IssueCategory, IssueSeverity, IssueStatus
from ..models.user import UserProfile, home_path_for_role
from ..services.dashboard_service import dashboard_service, issue_card, playground_card
from ..services.geo_service import nearest
from ..services.notification_service import notification_service
from ..services.issue_service import issue_service
from ..services.playground_service import playground_service, PlaygroundNotFoundError
from .playgrounds import origin_from_query

router = APIRouter(tags=["views"])

logger = logging.getLogger(__name__)


@router.get("/")
async def home():
    return {
        "name": "PlaySafe",
        "links": {"report": "/report", "status": "/status", "playgrounds": "/playground", "login": "/login"},
    }


@router.get("/login")
async def login_page(redirect: Optional[str] = Query(None)):
    return {"page": "login", "redirect": redirect, "action": "/api/auth/login"}


@router.get("/register")
async def register_page():
    return {"page": "register", "roles": ["citizen", "admin", "maintenance"], "action": "/api/auth/register"}


@router.get("/dashboard")
async def dashboard(current_user: UserProfile = Depends(get_current_profile)):
    """Generic landing page: points each role at its own dashboard"""
    return {"page": "dashboard", "role": current_user.role.value,
            "redirect": home_path_for_role(current_user.role.value)}


@router.get("/citizen")
async def citizen_view(
    lat: Optional[float] = Query(None),
    lon: Optional[float] = Query(None),
    current_user: UserProfile = Depends(require_citizen),
):
    try:
        return await dashboard_service.citizen_dashboard(current_user, origin_from_query(lat, lon))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[Views] Citizen dashboard failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to load dashboard: {str(e)}")


@router.get("/admin")
async def admin_view(current_user: UserProfile = Depends(require_admin)):
    try:
        view = await dashboard_service.admin_dashboard()
        view["allowDirectResolve"] = settings.ALLOW_DIRECT_RESOLVE
        return view
    except Exception as e:
        logger.error(f"[Views] Admin dashboard failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to load dashboard: {str(e)}")


@router.get("/maintenance")
async def maintenance_view(current_user: UserProfile = Depends(require_maintenance)):
    try:
        return await dashboard_service.maintenance_dashboard(current_user)
    except Exception as e:
        logger.error(f"[Views] Maintenance dashboard failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to load dashboard: {str(e)}")


@router.get("/notifications")
async def notifications_view(current_user: UserProfile = Depends(get_current_profile)):
    try:
        notifications = await notification_service.list_for_user(current_user.uid)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load notifications: {str(e)}")
    return {
        "notifications": notifications,
        "unreadCount": sum(1 for n in notifications if not n.isRead),
    }


@router.get("/status")
async def status_view(
    q: Optional[str] = Query(None),
    status: Optional[str] = Query("all"),
    current_user: UserProfile = Depends(get_current_profile),
):
    try:
        issues = await issue_service.search_issues(q, status)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load reports: {str(e)}")
    return {
        "query": q or "",
        "status": status or "all",
        "statuses": ["all"] + [s.value for s in IssueStatus],
        "reports": [issue_card(i) for i in issues],
    }


@router.get("/playground")
async def playground_directory_view(
    q: Optional[str] = Query(None),
    lat: Optional[float] = Query(None),
    lon: Optional[float] = Query(None),
    current_user: UserProfile = Depends(get_current_profile),
):
    origin = origin_from_query(lat, lon)
    try:
        playgrounds = await playground_service.with_active_issues(await playground_service.search(q))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load playgrounds: {str(e)}")
    return {
        "playgrounds": [playground_card(p) for p in nearest(origin, playgrounds)],
        "locationUsed": origin is not None,
    }


@router.get("/playground/{playground_id}")
async def playground_detail_view(playground_id: str, current_user: UserProfile = Depends(get_current_profile)):
    try:
        playground = await playground_service.get_playground(playground_id)
        playground = (await playground_service.with_active_issues([playground]))[0]
        issues = await playground_service.issues_for_playground(playground_id)
    except PlaygroundNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load playground: {str(e)}")
    return {"playground": playground_card(playground), "issues": [issue_card(i) for i in issues]}


@router.get("/report")
async def report_view(
    lat: Optional[float] = Query(None),
    lon: Optional[float] = Query(None),
    current_user: UserProfile = Depends(require_citizen),
):
    """Form options for filing a report, with the nearest playgrounds preselectable"""
    try:
        playgrounds = await playground_service.nearby(origin_from_query(lat, lon),
                                                      settings.NEARBY_PLAYGROUND_LIMIT)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load form: {str(e)}")
    return {
        "categories": [c.value for c in IssueCategory],
        "severities": [s.value for s in IssueSeverity],
        "maxPhotos": settings.MAX_REPORT_PHOTOS,
        "playgrounds": [playground_card(p) for p in playgrounds],
        "action": "/api/issues",
    }
