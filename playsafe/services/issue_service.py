"""
Issue store and lifecycle.

    pending -> assigned -> in-progress -> resolved (-> approved)

Each transition is a compare-and-swap on the issue's current ``status``
committed in one Firestore transaction together with its Assignment write,
so a transition computed from a stale read fails instead of overwriting.
"""

from typing import Dict, List, Optional
from datetime import datetime, timezone
import logging
import uuid

from ..core.config import settings
from ..database.database_service import (
    database_service, SideWrite, GUARD_CONFLICT, GUARD_NOT_FOUND,
)
from ..database.collections import COLLECTIONS
from ..models.database_models import (
    Assignment, AssignmentStatus, Issue, IssueCategory, IssueSeverity, IssueStatus,
)
from ..models.user import UserProfile, UserRole
from .evidence_service import process_completion_proof, process_report_photos
from .identity_service import identity_service
from .live_query_service import sort_newest_first
from .notification_service import notification_service
from .report_code_service import report_code_service

logger = logging.getLogger(__name__)


class IssueError(ValueError):
    pass


class IssueNotFoundError(IssueError):
    pass


class IssuePermissionError(IssueError):
    pass


class IssueTransitionError(IssueError):
    pass


class IssueConflictError(IssueError):
    pass


class IssueValidationError(IssueError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


class IssueService:
    def __init__(self):
        self.db = database_service
        self.identity = identity_service
        self.notifications = notification_service

    # ------------------------------------------------------------------ reads

    async def get_issue(self, issue_id: str) -> Issue:
        success, data, _ = await self.db.get_document(COLLECTIONS['issues'], issue_id)
        if not success or not data:
            raise IssueNotFoundError(f"Issue {issue_id} not found")
        return Issue(**data)

    async def _query(self, filters: Optional[List[tuple]] = None) -> List[Issue]:
        success, docs, error = await self.db.query_documents(COLLECTIONS['issues'], filters)
        if not success:
            raise Exception(f"Failed to load issues: {error}")
        return sort_newest_first([Issue(**doc) for doc in docs])

    async def list_issues(self, status: Optional[str] = None) -> List[Issue]:
        issues = await self._query()
        if status:
            issues = [i for i in issues if i.status.value == status]
        return issues

    async def list_reported_by(self, uid: str) -> List[Issue]:
        return await self._query([("reportedBy.uid", "==", uid)])

    async def list_assigned_to(self, email: str) -> List[Issue]:
        return await self._query([("assignedTo", "==", email)])

    async def lookup_by_report_code(self, report_id: str) -> Issue:
        code = (report_id or "").strip().upper()
        success, docs, _ = await self.db.query_documents(COLLECTIONS['issues'], [("reportId", "==", code)])
        if not success or not docs:
            raise IssueNotFoundError(f"No issue found with report code {code}")
        return Issue(**docs[0])

    async def search_issues(self, term: Optional[str] = None, status: Optional[str] = None) -> List[Issue]:
        """Public status board: match report code, title or location; optionally one status."""
        issues = await self.list_issues(None if status in (None, "", "all") else status)
        term = (term or "").strip().lower()
        if not term:
            return issues
        return [
            i for i in issues
            if term in (i.reportId or "").lower() or term in i.title.lower() or term in i.location.lower()
        ]

    async def list_assignments(self, issue_id: Optional[str] = None,
                               assigned_to: Optional[str] = None) -> List[Assignment]:
        filters = []
        if issue_id:
            filters.append(("issueId", "==", issue_id))
        if assigned_to:
            filters.append(("assignedTo", "==", assigned_to))
        success, docs, error = await self.db.query_documents(COLLECTIONS['assignments'], filters or None)
        if not success:
            raise Exception(f"Failed to load assignments: {error}")
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        assignments = [Assignment(**doc) for doc in docs]
        assignments.sort(key=lambda a: a.assignedAt or oldest, reverse=True)
        return assignments

    # ----------------------------------------------------------------- create

    async def create_issue(self, reporter: UserProfile, issue_data: dict) -> Issue:
        """File a new pending issue on behalf of a citizen."""
        if reporter.role != UserRole.CITIZEN:
            raise IssuePermissionError("Only citizens can report issues")

        description = (issue_data.get("description") or "").strip()
        if not description:
            raise IssueValidationError("A description is required")

        category = issue_data.get("category") or IssueCategory.OTHER.value
        if category not in {c.value for c in IssueCategory}:
            raise IssueValidationError(f"Unknown category '{category}'")

        photos = process_report_photos(issue_data.get("photos") or [])

        now = _now()
        document = {
            "reportId": report_code_service.generate(),
            "title": (issue_data.get("title") or "").strip() or description,
            "description": description,
            "category": category,
            "severity": Issue(severity=issue_data.get("severity")).severity.value,
            "location": (issue_data.get("location") or "").strip() or "Unknown Location",
            "playgroundId": issue_data.get("playgroundId"),
            "status": IssueStatus.PENDING.value,
            "assignedTo": None,
            "assignedAt": None,
            "assignedBy": None,
            "adminApproved": False,
            "directResolution": False,
            "reportedBy": {
                "uid": reporter.uid,
                "email": reporter.email,
                "firstName": reporter.firstName or "Unknown",
                "lastName": reporter.lastName or "User",
            },
            "photoUrls": photos,
            "completionProof": [],
            "completionNotes": "",
            "createdAt": now,
            "updatedAt": now,
            "workCompletedAt": None,
            "resolvedAt": None,
            "resolvedBy": None,
        }

        issue_id = str(uuid.uuid4())
        success, doc_id, error = await self.db.create_document(COLLECTIONS['issues'], document, issue_id)
        if not success:
            raise Exception(f"Failed to create issue: {error}")

        issue = Issue(id=doc_id, **document)
        logger.info(f"[Issues] {issue.reportId} reported by {reporter.email} ({issue.severity.value})")

        if issue.severity == IssueSeverity.HIGH:
            await self.notifications.notify_urgent_issue(issue)
        return issue

    # ------------------------------------------------------------ transitions

    async def _transition(self, issue: Issue, expected: Dict, updates: Dict,
                          side_writes: Optional[List[SideWrite]] = None,
                          action: str = "update issue") -> Issue:
        updates = {**updates, "updatedAt": _now()}
        success, document, error = await self.db.run_guarded_update(
            COLLECTIONS['issues'], issue.id, expected, updates, side_writes
        )
        if success:
            return Issue(**document)
        if error == GUARD_NOT_FOUND:
            raise IssueNotFoundError(f"Issue {issue.id} not found")
        if error == GUARD_CONFLICT:
            current = Issue(**document) if document else issue
            logger.warning(f"[Issues] Stale {action} on {issue.id}: now {current.status.value}")
            raise IssueConflictError(
                f"Issue was changed by someone else (now {current.status.value}); reload and try again"
            )
        raise Exception(f"Failed to {action}: {error}")

    @staticmethod
    def _require_status(issue: Issue, *allowed: IssueStatus):
        if issue.status not in allowed:
            expected = " or ".join(s.value for s in allowed)
            raise IssueTransitionError(f"Issue is {issue.status.value}, expected {expected}")

    @staticmethod
    def _require_role(actor: UserProfile, role: UserRole, action: str):
        if actor.role != role:
            raise IssuePermissionError(f"Only {role.value} users can {action}")

    async def assign_issue(self, issue_id: str, staff_email: str, admin: UserProfile) -> Issue:
        """Assign a pending issue to a maintenance staff member."""
        self._require_role(admin, UserRole.ADMIN, "assign issues")
        issue = await self.get_issue(issue_id)
        if issue.status == IssueStatus.ASSIGNED:
            # Another admin got there first; moving it is an explicit reassign
            raise IssueConflictError(f"Issue is already assigned to {issue.assignedTo}")
        self._require_status(issue, IssueStatus.PENDING)
        staff = await self._require_staff(staff_email)
        return await self._route_to_staff(issue, staff, admin, reassigning=False)

    async def reassign_issue(self, issue_id: str, staff_email: str, admin: UserProfile) -> Issue:
        """Move an assigned, not yet started issue to a different staff member."""
        self._require_role(admin, UserRole.ADMIN, "reassign issues")
        issue = await self.get_issue(issue_id)
        self._require_status(issue, IssueStatus.ASSIGNED)
        staff = await self._require_staff(staff_email)
        if _same_email(issue.assignedTo, staff.email):
            raise IssueTransitionError(f"Issue is already assigned to {staff.email}")
        return await self._route_to_staff(issue, staff, admin, reassigning=True)

    async def _require_staff(self, staff_email: str) -> UserProfile:
        staff = await self.identity.find_maintenance_staff(staff_email)
        if not staff:
            raise IssueValidationError(f"{staff_email} is not a registered maintenance staff member")
        return staff

    async def _route_to_staff(self, issue: Issue, staff: UserProfile, admin: UserProfile,
                              reassigning: bool) -> Issue:
        now = _now()
        expected = {"status": issue.status.value}
        side_writes = []
        if reassigning:
            expected["assignedTo"] = issue.assignedTo
            side_writes.append(SideWrite(
                op="update_where",
                collection=COLLECTIONS['assignments'],
                filters=[("issueId", "==", issue.id), ("status", "==", AssignmentStatus.ACTIVE.value)],
                data={"status": AssignmentStatus.REASSIGNED.value},
            ))
        side_writes.append(SideWrite(
            op="create",
            collection=COLLECTIONS['assignments'],
            document_id=str(uuid.uuid4()),
            data={
                "issueId": issue.id,
                "issueTitle": issue.title,
                "issueLocation": issue.location,
                "issueSeverity": issue.severity.value,
                "assignedTo": staff.email,
                "assignedToName": staff.full_name,
                "assignedBy": admin.email,
                "assignedAt": now,
                "status": AssignmentStatus.ACTIVE.value,
                "notificationSent": False,
                "completedAt": None,
            },
        ))
        assignment_id = side_writes[-1].document_id

        updated = await self._transition(
            issue,
            expected,
            {
                "status": IssueStatus.ASSIGNED.value,
                "assignedTo": staff.email,
                "assignedAt": now,
                "assignedBy": admin.email,
            },
            side_writes,
            action="reassign issue" if reassigning else "assign issue",
        )
        logger.info(f"[Issues] {updated.reportId} {'reassigned' if reassigning else 'assigned'} to {staff.email} by {admin.email}")
        if await self.notifications.notify_issue_assigned(updated):
            success, error = await self.db.update_document(
                COLLECTIONS['assignments'], assignment_id, {"notificationSent": True}
            )
            if not success:
                logger.error(f"[Issues] Could not flag assignment {assignment_id} as notified: {error}")
        return updated

    async def _load_for_staff(self, issue_id: str, staff: UserProfile) -> Issue:
        self._require_role(staff, UserRole.MAINTENANCE, "work on issues")
        issue = await self.get_issue(issue_id)
        if not _same_email(issue.assignedTo, staff.email):
            raise IssuePermissionError("This issue is not assigned to you")
        return issue

    async def start_work(self, issue_id: str, staff: UserProfile) -> Issue:
        issue = await self._load_for_staff(issue_id, staff)
        self._require_status(issue, IssueStatus.ASSIGNED)
        updated = await self._transition(
            issue,
            {"status": IssueStatus.ASSIGNED.value, "assignedTo": issue.assignedTo},
            {"status": IssueStatus.IN_PROGRESS.value},
            action="start work",
        )
        logger.info(f"[Issues] {updated.reportId} in progress by {staff.email}")
        return updated

    async def complete_work(self, issue_id: str, staff: UserProfile,
                            proof_photos: Optional[List[str]] = None, notes: str = "") -> Issue:
        issue = await self._load_for_staff(issue_id, staff)
        self._require_status(issue, IssueStatus.IN_PROGRESS)
        proof = process_completion_proof(proof_photos or [])

        updated = await self._transition(
            issue,
            {"status": IssueStatus.IN_PROGRESS.value, "assignedTo": issue.assignedTo},
            {
                "status": IssueStatus.RESOLVED.value,
                "workCompletedAt": _now(),
                "completionProof": proof,
                "completionNotes": (notes or "").strip(),
                "resolvedBy": staff.email,
                "adminApproved": False,
            },
            action="complete work",
        )
        logger.info(f"[Issues] {updated.reportId} submitted for approval by {staff.email}")
        await self.notifications.notify_work_submitted(updated)
        return updated

    @staticmethod
    def _reviewed_submission(issue: Issue) -> Dict:
        # A reject-and-resubmit in between changes workCompletedAt, so the review is stale
        return {
            "status": IssueStatus.RESOLVED.value,
            "adminApproved": False,
            "workCompletedAt": issue.workCompletedAt,
        }

    def _require_awaiting_approval(self, issue: Issue):
        self._require_status(issue, IssueStatus.RESOLVED)
        if issue.adminApproved:
            raise IssueConflictError("Issue has already been approved")
        if issue.directResolution:
            raise IssueTransitionError("Directly resolved issues have no work to review")
        if issue.workCompletedAt is None:
            raise IssueTransitionError("No completed work has been submitted for this issue")

    async def approve_completion(self, issue_id: str, admin: UserProfile) -> Issue:
        self._require_role(admin, UserRole.ADMIN, "approve work")
        issue = await self.get_issue(issue_id)
        self._require_awaiting_approval(issue)

        now = _now()
        updated = await self._transition(
            issue,
            self._reviewed_submission(issue),
            {"adminApproved": True, "resolvedAt": now, "resolvedBy": admin.email},
            [SideWrite(
                op="update_where",
                collection=COLLECTIONS['assignments'],
                filters=[("issueId", "==", issue.id), ("status", "==", AssignmentStatus.ACTIVE.value)],
                data={"status": AssignmentStatus.COMPLETED.value, "completedAt": now},
            )],
            action="approve work",
        )
        logger.info(f"[Issues] ✅ {updated.reportId} approved by {admin.email}")
        await self.notifications.notify_completion_approved(updated)
        return updated

    async def reject_completion(self, issue_id: str, admin: UserProfile, reason: Optional[str] = None) -> Issue:
        self._require_role(admin, UserRole.ADMIN, "reject work")
        issue = await self.get_issue(issue_id)
        self._require_awaiting_approval(issue)

        updated = await self._transition(
            issue,
            self._reviewed_submission(issue),
            {
                "status": IssueStatus.IN_PROGRESS.value,
                "adminApproved": False,
                "workCompletedAt": None,
                "completionProof": [],
                "completionNotes": "",
            },
            action="reject work",
        )
        logger.info(f"[Issues] ❌ {updated.reportId} sent back to {updated.assignedTo} by {admin.email}")
        await self.notifications.notify_completion_rejected(updated, reason)
        return updated

    async def admin_resolve(self, issue_id: str, admin: UserProfile) -> Issue:
        """Resolve without assignment or review. Disabled unless ALLOW_DIRECT_RESOLVE is set."""
        self._require_role(admin, UserRole.ADMIN, "resolve issues")
        if not settings.ALLOW_DIRECT_RESOLVE:
            raise IssuePermissionError("Direct resolution is disabled; assign the issue instead")

        issue = await self.get_issue(issue_id)
        self._require_status(issue, IssueStatus.PENDING, IssueStatus.ASSIGNED, IssueStatus.IN_PROGRESS)

        now = _now()
        updated = await self._transition(
            issue,
            {"status": issue.status.value},
            {
                "status": IssueStatus.RESOLVED.value,
                "resolvedAt": now,
                "resolvedBy": admin.email,
                "directResolution": True,
                "adminApproved": False,
            },
            [SideWrite(
                op="update_where",
                collection=COLLECTIONS['assignments'],
                filters=[("issueId", "==", issue.id), ("status", "==", AssignmentStatus.ACTIVE.value)],
                data={"status": AssignmentStatus.COMPLETED.value, "completedAt": now},
            )],
            action="resolve issue",
        )
        logger.warning(f"[Issues] {updated.reportId} resolved directly by {admin.email}")
        return updated


issue_service = IssueService()
