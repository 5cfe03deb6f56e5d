import asyncio
import re

import pytest

from conftest import make_photo
from playsafe.core.config import settings
from playsafe.models.database_models import IssueStatus
from playsafe.services.evidence_service import EvidenceError
from playsafe.services.issue_service import (
    issue_service, IssueConflictError, IssueNotFoundError, IssuePermissionError,
    IssueTransitionError, IssueValidationError,
)

pytestmark = pytest.mark.asyncio


async def report(citizen, **overrides):
    data = {
        "title": "Broken swing chain",
        "description": "The left swing chain snapped",
        "category": "safety-hazard",
        "severity": "high",
        "location": "13.056900, 80.284400",
    }
    data.update(overrides)
    return await issue_service.create_issue(citizen, data)


def assignments_for(fake_db, issue_id):
    return [a for a in fake_db.docs("assignments") if a["issueId"] == issue_id]


async def test_citizen_report_starts_pending(fake_db, citizen, admin):
    issue = await report(citizen)

    assert issue.status == IssueStatus.PENDING
    assert issue.adminApproved is False
    assert issue.photoUrls == []
    assert issue.reportedBy.uid == citizen.uid
    assert issue.reportedBy.email == citizen.email
    assert issue.reportedBy.firstName == "Priya"
    assert re.fullmatch(r"PS-\d{6}", issue.reportId)

    stored = fake_db.raw("issues", issue.id)
    assert stored["status"] == "pending"
    assert stored["workCompletedAt"] is None
    assert stored["completionProof"] == []


async def test_high_severity_report_notifies_admins(fake_db, citizen, admin):
    issue = await report(citizen)

    urgent = [n for n in fake_db.docs("notifications") if n["notificationType"] == "urgent"]
    assert len(urgent) == 1
    assert urgent[0]["recipientId"] == admin.uid
    assert urgent[0]["issueId"] == issue.id


async def test_only_citizens_can_report(fake_db, admin):
    with pytest.raises(IssuePermissionError):
        await report(admin)


async def test_report_rejects_unknown_category(fake_db, citizen):
    with pytest.raises(IssueValidationError):
        await report(citizen, category="graffiti")


async def test_report_photo_limit(fake_db, citizen):
    photos = [make_photo(size=(40, 40)) for _ in range(4)]
    with pytest.raises(EvidenceError):
        await report(citizen, photos=photos)
    assert fake_db.docs("issues") == []


async def test_report_photos_are_reencoded(fake_db, citizen):
    issue = await report(citizen, photos=[make_photo(size=(1600, 1200))])
    assert len(issue.photoUrls) == 1
    assert issue.photoUrls[0].startswith("data:image/jpeg;base64,")


async def test_assign_creates_one_active_assignment(fake_db, citizen, admin, staff):
    issue = await report(citizen)
    assigned = await issue_service.assign_issue(issue.id, "m@x.com", admin)

    assert assigned.status == IssueStatus.ASSIGNED
    assert assigned.assignedTo == "m@x.com"
    assert assigned.assignedBy == admin.email

    records = assignments_for(fake_db, issue.id)
    assert len(records) == 1
    assert records[0]["status"] == "active"
    assert records[0]["assignedToName"] == "Meena S"
    assert records[0]["notificationSent"] is True

    notes = [n for n in fake_db.docs("notifications") if n["notificationType"] == "assignment"]
    assert [n["recipientId"] for n in notes] == [staff.uid]


async def test_assign_requires_known_staff(fake_db, citizen, admin, staff):
    issue = await report(citizen)
    with pytest.raises(IssueValidationError):
        await issue_service.assign_issue(issue.id, "nobody@x.com", admin)
    assert fake_db.raw("issues", issue.id)["status"] == "pending"
    assert assignments_for(fake_db, issue.id) == []


async def test_second_assign_in_sequence_conflicts(fake_db, citizen, admin, staff, other_staff):
    issue = await report(citizen)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)

    with pytest.raises(IssueConflictError):
        await issue_service.assign_issue(issue.id, "n@x.com", admin)

    assert fake_db.raw("issues", issue.id)["assignedTo"] == "m@x.com"
    assert len(assignments_for(fake_db, issue.id)) == 1


async def test_concurrent_assigns_only_one_lands(fake_db, citizen, admin, staff, other_staff):
    issue = await report(citizen)

    results = await asyncio.gather(
        issue_service.assign_issue(issue.id, "m@x.com", admin),
        issue_service.assign_issue(issue.id, "n@x.com", admin),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, IssueConflictError)]
    assert len(succeeded) == 1
    assert len(conflicts) == 1

    stored = fake_db.raw("issues", issue.id)
    assert stored["assignedTo"] == succeeded[0].assignedTo == "m@x.com"
    records = assignments_for(fake_db, issue.id)
    assert len(records) == 1
    assert records[0]["assignedTo"] == "m@x.com"


async def test_reassign_retires_previous_assignment(fake_db, citizen, admin, staff, other_staff):
    issue = await report(citizen)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)
    updated = await issue_service.reassign_issue(issue.id, "n@x.com", admin)

    assert updated.assignedTo == "n@x.com"
    statuses = sorted((a["assignedTo"], a["status"]) for a in assignments_for(fake_db, issue.id))
    assert statuses == [("m@x.com", "reassigned"), ("n@x.com", "active")]


async def test_reassign_to_same_staff_is_rejected(fake_db, citizen, admin, staff):
    issue = await report(citizen)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)
    with pytest.raises(IssueTransitionError):
        await issue_service.reassign_issue(issue.id, "M@X.com", admin)


async def test_full_lifecycle_to_approval(fake_db, citizen, admin, staff):
    issue = await report(citizen)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)

    started = await issue_service.start_work(issue.id, staff)
    assert started.status == IssueStatus.IN_PROGRESS

    completed = await issue_service.complete_work(issue.id, staff, [make_photo(size=(100, 100))], "Replaced chain")
    assert completed.status == IssueStatus.RESOLVED
    assert completed.adminApproved is False
    assert completed.workCompletedAt is not None
    assert completed.resolvedBy == "m@x.com"
    assert completed.completionNotes == "Replaced chain"
    assert len(completed.completionProof) == 1
    assert completed.awaiting_approval

    approved = await issue_service.approve_completion(issue.id, admin)
    assert approved.adminApproved is True
    assert approved.status == IssueStatus.RESOLVED
    assert approved.workCompletedAt is not None
    assert approved.resolvedBy == admin.email
    assert approved.resolvedAt is not None

    records = assignments_for(fake_db, issue.id)
    assert len(records) == 1
    assert records[0]["status"] == "completed"
    assert records[0]["completedAt"] is not None

    types = {n["notificationType"] for n in fake_db.docs("notifications")}
    assert {"assignment", "completion", "approval"} <= types


async def test_reject_resets_to_in_progress(fake_db, citizen, admin, staff):
    issue = await report(citizen)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)
    await issue_service.start_work(issue.id, staff)
    await issue_service.complete_work(issue.id, staff, [make_photo(size=(100, 100))], "Done")

    rejected = await issue_service.reject_completion(issue.id, admin, "Chain still loose")

    assert rejected.status == IssueStatus.IN_PROGRESS
    assert rejected.completionProof == []
    assert rejected.completionNotes == ""
    assert rejected.adminApproved is False
    assert rejected.workCompletedAt is None
    stored = fake_db.raw("issues", issue.id)
    assert stored["workCompletedAt"] is None

    rejection = [n for n in fake_db.docs("notifications") if n["notificationType"] == "rejection"]
    assert "Chain still loose" in rejection[0]["message"]

    # Staff can submit again after a rejection
    resubmitted = await issue_service.complete_work(issue.id, staff, [], "Tightened")
    assert resubmitted.status == IssueStatus.RESOLVED


async def test_only_assigned_staff_can_work(fake_db, citizen, admin, staff, other_staff):
    issue = await report(citizen)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)
    with pytest.raises(IssuePermissionError):
        await issue_service.start_work(issue.id, other_staff)


async def test_out_of_order_transitions_are_rejected_and_leave_document_unchanged(fake_db, citizen, admin, staff):
    issue = await report(citizen)

    with pytest.raises(IssueTransitionError):
        await issue_service.approve_completion(issue.id, admin)

    await issue_service.assign_issue(issue.id, "m@x.com", admin)

    with pytest.raises(IssueTransitionError):
        await issue_service.complete_work(issue.id, staff, [], "skipped start")
    with pytest.raises(IssueTransitionError):
        await issue_service.approve_completion(issue.id, admin)
    with pytest.raises(IssueTransitionError):
        await issue_service.reject_completion(issue.id, admin)

    await issue_service.start_work(issue.id, staff)
    before = dict(fake_db.raw("issues", issue.id))
    with pytest.raises(IssueTransitionError):
        await issue_service.start_work(issue.id, staff)
    assert fake_db.raw("issues", issue.id) == before


async def test_guard_catches_change_between_read_and_commit(fake_db, citizen, admin, staff, monkeypatch):
    issue = await report(citizen)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)
    await issue_service.start_work(issue.id, staff)
    await issue_service.complete_work(issue.id, staff, [], "Done")

    original = fake_db.run_guarded_update

    async def approve_lands_first(collection, document_id, expected, updates, side_writes=None):
        # Another admin approves after this request read the issue
        fake_db.raw("issues", document_id)["adminApproved"] = True
        return await original(collection, document_id, expected, updates, side_writes)

    monkeypatch.setattr(fake_db, "run_guarded_update", approve_lands_first)
    with pytest.raises(IssueConflictError):
        await issue_service.reject_completion(issue.id, admin)
    assert fake_db.raw("issues", issue.id)["status"] == "resolved"


@pytest.mark.parametrize("action", ["approve", "reject"])
async def test_review_of_replaced_submission_conflicts(fake_db, citizen, admin, staff, monkeypatch, action):
    issue = await report(citizen)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)
    await issue_service.start_work(issue.id, staff)
    await issue_service.complete_work(issue.id, staff, [], "first proof")

    original = fake_db.run_guarded_update
    swapped = []

    async def rejected_and_resubmitted(collection, document_id, expected, updates, side_writes=None):
        # Another admin rejects and the staff member resubmits after this review read the issue
        if not swapped:
            swapped.append(True)
            await issue_service.reject_completion(issue.id, admin, "redo")
            await issue_service.complete_work(issue.id, staff, [], "second proof")
        return await original(collection, document_id, expected, updates, side_writes)

    monkeypatch.setattr(fake_db, "run_guarded_update", rejected_and_resubmitted)
    review = issue_service.approve_completion if action == "approve" else issue_service.reject_completion
    with pytest.raises(IssueConflictError):
        await review(issue.id, admin)

    stored = fake_db.raw("issues", issue.id)
    assert stored["status"] == "resolved"
    assert stored["adminApproved"] is False
    assert stored["completionNotes"] == "second proof"


async def test_assignment_records_failed_notification(fake_db, citizen, admin, staff, monkeypatch):
    issue = await report(citizen, severity="low")
    original = fake_db.create_document

    async def notifications_down(collection, data, document_id=None, validate=True):
        if collection == "notifications":
            return False, None, "unavailable"
        return await original(collection, data, document_id, validate)

    monkeypatch.setattr(fake_db, "create_document", notifications_down)
    await issue_service.assign_issue(issue.id, "m@x.com", admin)

    assert fake_db.docs("notifications") == []
    assert assignments_for(fake_db, issue.id)[0]["notificationSent"] is False


async def test_assignment_records_delivered_notification(fake_db, citizen, admin, staff):
    issue = await report(citizen, severity="low")
    await issue_service.assign_issue(issue.id, "m@x.com", admin)
    assert assignments_for(fake_db, issue.id)[0]["notificationSent"] is True


async def test_approved_implies_resolved_with_completed_work(fake_db, citizen, admin, staff):
    first = await report(citizen, title="one")
    second = await report(citizen, title="two")
    for issue in (first, second):
        await issue_service.assign_issue(issue.id, "m@x.com", admin)
        await issue_service.start_work(issue.id, staff)
        await issue_service.complete_work(issue.id, staff, [], "Done")
    await issue_service.approve_completion(first.id, admin)
    await issue_service.reject_completion(second.id, admin)

    with pytest.raises(IssueConflictError):
        await issue_service.approve_completion(first.id, admin)

    staff_emails = {u["email"] for u in fake_db.docs("users") if u["role"] == "maintenance"}
    for doc in fake_db.docs("issues"):
        if doc["adminApproved"]:
            assert doc["status"] == "resolved"
            assert doc["workCompletedAt"] is not None
        if doc["status"] in ("assigned", "in-progress", "resolved") and not doc.get("directResolution"):
            assert doc["assignedTo"] in staff_emails


async def test_direct_resolve_disabled_by_default(fake_db, citizen, admin):
    issue = await report(citizen)
    with pytest.raises(IssuePermissionError):
        await issue_service.admin_resolve(issue.id, admin)


async def test_direct_resolve_is_flagged_and_not_approvable(fake_db, citizen, admin, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_DIRECT_RESOLVE", True)
    issue = await report(citizen)

    resolved = await issue_service.admin_resolve(issue.id, admin)
    assert resolved.status == IssueStatus.RESOLVED
    assert resolved.directResolution is True
    assert resolved.adminApproved is False
    assert resolved.resolvedBy == admin.email

    with pytest.raises(IssueTransitionError):
        await issue_service.approve_completion(issue.id, admin)


async def test_unknown_issue(fake_db, admin, staff):
    with pytest.raises(IssueNotFoundError):
        await issue_service.assign_issue("missing", "m@x.com", admin)


async def test_queries_sort_newest_first(fake_db, citizen, admin, staff):
    older = await report(citizen, title="older")
    newer = await report(citizen, title="newer")
    await issue_service.assign_issue(older.id, "m@x.com", admin)

    assert [i.title for i in await issue_service.list_reported_by(citizen.uid)] == ["newer", "older"]
    assert [i.title for i in await issue_service.list_assigned_to("m@x.com")] == ["older"]
    assert (await issue_service.lookup_by_report_code(newer.reportId.lower())).id == newer.id
    assert [i.title for i in await issue_service.search_issues("OLD")] == ["older"]
    assert [i.title for i in await issue_service.search_issues(None, "pending")] == ["newer"]


async def test_legacy_documents_read_with_defaults(fake_db, admin):
    fake_db.collections["issues"] = {"legacy": {
        "description": "Slide has a crack",
        "severity": "critical",
        "status": "archived",
        "location": "",
        "reportedBy": None,
    }}
    issue = await issue_service.get_issue("legacy")
    assert issue.title == "Slide has a crack"
    assert issue.severity.value == "medium"
    assert issue.status == IssueStatus.PENDING
    assert issue.location == "Unknown Location"
    assert issue.reportedBy.firstName == "Unknown"
