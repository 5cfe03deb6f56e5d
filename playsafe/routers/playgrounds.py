from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
from pydantic import BaseModel
import logging

from ..auth.dependencies import require_admin
from ..models.database_models import PlaygroundStatus
from ..models.user import UserProfile
from ..services.dashboard_service import issue_card, playground_card
from ..services.playground_service import playground_service, PlaygroundNotFoundError
from ..services.geo_service import nearest

router = APIRouter(prefix="/api/playgrounds", tags=["playgrounds"])

logger = logging.getLogger(__name__)


class UpdatePlaygroundStatusRequest(BaseModel):
    status: PlaygroundStatus


def origin_from_query(lat: Optional[float], lon: Optional[float]):
    if lat is None or lon is None:
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise HTTPException(status_code=400, detail="lat/lon out of range")
    return lat, lon


@router.get("")
async def list_playgrounds(
    q: Optional[str] = Query(None, description="Search name or address"),
    lat: Optional[float] = Query(None),
    lon: Optional[float] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
):
    """Playground directory; sorted by distance when the caller's location is given"""
    origin = origin_from_query(lat, lon)
    try:
        playgrounds = await playground_service.search(q)
        playgrounds = await playground_service.with_active_issues(playgrounds)
    except Exception as e:
        logger.error(f"[Playgrounds] Listing failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to load playgrounds: {str(e)}")
    return [playground_card(p) for p in nearest(origin, playgrounds, limit)]


@router.get("/{playground_id}")
async def get_playground(playground_id: str):
    try:
        playground = await playground_service.get_playground(playground_id)
        playground = (await playground_service.with_active_issues([playground]))[0]
        return playground_card(playground)
    except PlaygroundNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load playground: {str(e)}")


@router.get("/{playground_id}/issues")
async def playground_issues(playground_id: str):
    try:
        return [issue_card(i) for i in await playground_service.issues_for_playground(playground_id)]
    except PlaygroundNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to load playground issues: {str(e)}")


@router.patch("/{playground_id}/status")
async def update_playground_status(playground_id: str, request: UpdatePlaygroundStatusRequest,
                                   current_user: UserProfile = Depends(require_admin)):
    try:
        playground = await playground_service.update_status(playground_id, request.status.value)
        return {"message": f"{playground.name} marked {playground.status.value}", "playground": playground}
    except PlaygroundNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update playground: {str(e)}")


@router.post("/refresh-active-issues")
async def refresh_active_issues(current_user: UserProfile = Depends(require_admin)):
    try:
        changed = await playground_service.refresh_active_issues()
        return {"message": "Active issue counts refreshed", "changed": changed}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Refresh failed: {str(e)}")
