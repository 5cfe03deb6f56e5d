from fastapi import APIRouter, HTTPException, Depends, Query
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field
import logging

from ..auth.dependencies import get_current_profile, require_admin, require_citizen, require_maintenance
from ..models.database_models import IssueCategory, IssueSeverity
from ..models.user import UserProfile, UserRole
from ..services.evidence_service import EvidenceError
from ..services.issue_service import (
    issue_service, IssueConflictError, IssueError, IssueNotFoundError,
    IssuePermissionError, IssueTransitionError, IssueValidationError,
)

router = APIRouter(prefix="/api/issues", tags=["issues"])

logger = logging.getLogger(__name__)


# Request Models
class CreateIssueRequest(BaseModel):
    title: Optional[str] = None
    description: str = Field(..., min_length=1)
    category: IssueCategory = IssueCategory.OTHER
    severity: IssueSeverity = IssueSeverity.MEDIUM
    location: Optional[str] = None  # "lat, lon" or a place name
    playgroundId: Optional[str] = None
    photos: List[str] = []  # base64 or data URLs


class AssignIssueRequest(BaseModel):
    staffEmail: EmailStr


class CompleteWorkRequest(BaseModel):
    photos: List[str] = []
    notes: str = ""


class RejectCompletionRequest(BaseModel):
    reason: Optional[str] = None


def to_http_error(e: Exception) -> HTTPException:
    """Map lifecycle errors to the HTTP status a client can act on."""
    if isinstance(e, IssueNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, IssuePermissionError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, IssueConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (IssueTransitionError, IssueValidationError, EvidenceError, IssueError)):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"[Issues] Unexpected error: {str(e)}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Issue operation failed: {str(e)}")


def _can_view(issue, user: UserProfile) -> bool:
    if user.role == UserRole.ADMIN:
        return True
    if user.role == UserRole.CITIZEN:
        return issue.reportedBy.uid == user.uid
    return (issue.assignedTo or "").lower() == user.email.lower()


@router.post("")
async def create_issue(request: CreateIssueRequest, current_user: UserProfile = Depends(require_citizen)):
    """Report a new playground issue (citizens only)"""
    try:
        issue = await issue_service.create_issue(current_user, request.model_dump(mode="json"))
        return {"message": "Issue reported successfully", "reportId": issue.reportId, "issue": issue}
    except Exception as e:
        raise to_http_error(e)


@router.get("")
async def list_issues(status: Optional[str] = Query(None), current_user: UserProfile = Depends(require_admin)):
    try:
        return await issue_service.list_issues(status)
    except Exception as e:
        raise to_http_error(e)


@router.get("/mine")
async def my_issues(current_user: UserProfile = Depends(get_current_profile)):
    """Issues the caller reported, newest first"""
    try:
        return await issue_service.list_reported_by(current_user.uid)
    except Exception as e:
        raise to_http_error(e)


@router.get("/assigned")
async def assigned_issues(current_user: UserProfile = Depends(require_maintenance)):
    try:
        return await issue_service.list_assigned_to(current_user.email)
    except Exception as e:
        raise to_http_error(e)


@router.get("/search")
async def search_issues(q: Optional[str] = Query(None), status: Optional[str] = Query(None)):
    """Public status board"""
    try:
        issues = await issue_service.search_issues(q, status)
        return [
            {
                "id": i.id,
                "reportId": i.reportId,
                "title": i.title,
                "category": i.category,
                "severity": i.severity,
                "location": i.location,
                "status": i.status,
                "adminApproved": i.adminApproved,
                "createdAt": i.createdAt,
                "resolvedAt": i.resolvedAt,
            }
            for i in issues
        ]
    except Exception as e:
        raise to_http_error(e)


@router.get("/code/{report_id}")
async def get_issue_by_code(report_id: str, current_user: UserProfile = Depends(get_current_profile)):
    try:
        issue = await issue_service.lookup_by_report_code(report_id)
    except Exception as e:
        raise to_http_error(e)
    if not _can_view(issue, current_user):
        raise HTTPException(status_code=403, detail="You do not have access to this issue")
    return issue


@router.get("/{issue_id}")
async def get_issue(issue_id: str, current_user: UserProfile = Depends(get_current_profile)):
    try:
        issue = await issue_service.get_issue(issue_id)
    except Exception as e:
        raise to_http_error(e)
    if not _can_view(issue, current_user):
        raise HTTPException(status_code=403, detail="You do not have access to this issue")
    return issue


@router.post("/{issue_id}/assign")
async def assign_issue(issue_id: str, request: AssignIssueRequest,
                       current_user: UserProfile = Depends(require_admin)):
    """Assign a pending issue to a maintenance staff member"""
    try:
        issue = await issue_service.assign_issue(issue_id, request.staffEmail, current_user)
        return {"message": f"Issue assigned to {issue.assignedTo}", "issue": issue}
    except Exception as e:
        raise to_http_error(e)


@router.post("/{issue_id}/reassign")
async def reassign_issue(issue_id: str, request: AssignIssueRequest,
                         current_user: UserProfile = Depends(require_admin)):
    try:
        issue = await issue_service.reassign_issue(issue_id, request.staffEmail, current_user)
        return {"message": f"Issue reassigned to {issue.assignedTo}", "issue": issue}
    except Exception as e:
        raise to_http_error(e)


@router.post("/{issue_id}/start")
async def start_work(issue_id: str, current_user: UserProfile = Depends(require_maintenance)):
    try:
        issue = await issue_service.start_work(issue_id, current_user)
        return {"message": "Work started", "issue": issue}
    except Exception as e:
        raise to_http_error(e)


@router.post("/{issue_id}/complete")
async def complete_work(issue_id: str, request: CompleteWorkRequest,
                        current_user: UserProfile = Depends(require_maintenance)):
    try:
        issue = await issue_service.complete_work(issue_id, current_user, request.photos, request.notes)
        return {"message": "Work submitted for admin approval", "issue": issue}
    except Exception as e:
        raise to_http_error(e)


@router.post("/{issue_id}/approve")
async def approve_completion(issue_id: str, current_user: UserProfile = Depends(require_admin)):
    try:
        issue = await issue_service.approve_completion(issue_id, current_user)
        return {"message": "Completion approved", "issue": issue}
    except Exception as e:
        raise to_http_error(e)


@router.post("/{issue_id}/reject")
async def reject_completion(issue_id: str, request: RejectCompletionRequest,
                            current_user: UserProfile = Depends(require_admin)):
    try:
        issue = await issue_service.reject_completion(issue_id, current_user, request.reason)
        return {"message": "Completion rejected; issue returned to in-progress", "issue": issue}
    except Exception as e:
        raise to_http_error(e)


@router.post("/{issue_id}/resolve")
async def resolve_directly(issue_id: str, current_user: UserProfile = Depends(require_admin)):
    try:
        issue = await issue_service.admin_resolve(issue_id, current_user)
        return {"message": "Issue resolved", "issue": issue}
    except Exception as e:
        raise to_http_error(e)
