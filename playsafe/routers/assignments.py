from fastapi import APIRouter, Depends, Query
from typing import Optional
import logging

from ..auth.dependencies import require_admin, require_maintenance
from ..models.user import UserProfile
from ..services.issue_service import issue_service
from .issues import to_http_error

router = APIRouter(prefix="/api/assignments", tags=["assignments"])

logger = logging.getLogger(__name__)


@router.get("")
async def list_assignments(issue_id: Optional[str] = Query(None, alias="issueId"),
                           current_user: UserProfile = Depends(require_admin)):
    """Assignment history, newest first; optionally for one issue"""
    try:
        return await issue_service.list_assignments(issue_id=issue_id)
    except Exception as e:
        raise to_http_error(e)


@router.get("/mine")
async def my_assignments(current_user: UserProfile = Depends(require_maintenance)):
    try:
        return await issue_service.list_assignments(assigned_to=current_user.email)
    except Exception as e:
        raise to_http_error(e)
