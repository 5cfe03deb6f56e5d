from datetime import date, datetime, timedelta, timezone

import pytest

from playsafe.models.database_models import Issue
from playsafe.core.config import settings
from playsafe.services.dashboard_service import (
    average_response_time, dashboard_service, format_date, resolved_on, status_breakdown,
)

NOW = datetime(2025, 9, 10, 15, 0, tzinfo=timezone.utc)


def _resolved(days_open, resolved_at=NOW):
    return Issue(status="resolved", createdAt=resolved_at - timedelta(days=days_open), resolvedAt=resolved_at)


def test_average_response_time():
    assert average_response_time([_resolved(1), _resolved(4)]) == "2.5d"
    assert average_response_time([_resolved(0.25)]) == "0.3d"
    # Open issues do not count
    assert average_response_time([Issue(status="pending", createdAt=NOW)]) == "N/A"
    assert average_response_time([]) == "N/A"


def test_format_date():
    assert format_date(NOW) == "10/09/2025"
    assert format_date("2025-08-25") == "25/08/2025"
    assert format_date("2025-08-25T10:00:00Z") == "25/08/2025"
    assert format_date(None) == "N/A"
    assert format_date("last tuesday") == "N/A"


def test_resolved_on():
    issues = [_resolved(1), _resolved(2, NOW - timedelta(days=1)), Issue(status="pending")]
    assert resolved_on(issues, NOW.date()) == 1
    assert resolved_on(issues, date(2025, 1, 1)) == 0


def test_resolved_on_uses_local_day(monkeypatch):
    late_evening_utc = [_resolved(1, datetime(2025, 9, 10, 20, 0, tzinfo=timezone.utc))]

    monkeypatch.setattr(settings, "TZ_OFFSET", 5.5)
    assert resolved_on(late_evening_utc, date(2025, 9, 11)) == 1
    assert resolved_on(late_evening_utc, date(2025, 9, 10)) == 0
    assert format_date(datetime(2025, 9, 10, 20, 0, tzinfo=timezone.utc)) == "11/09/2025"

    monkeypatch.setattr(settings, "TZ_OFFSET", 0)
    assert resolved_on(late_evening_utc, date(2025, 9, 10)) == 1


def test_status_breakdown():
    issues = [Issue(status="pending"), Issue(status="pending"), Issue(status="resolved")]
    assert status_breakdown(issues) == [
        {"status": "pending", "count": 2, "percentage": 66.7},
        {"status": "assigned", "count": 0, "percentage": 0.0},
        {"status": "in-progress", "count": 0, "percentage": 0.0},
        {"status": "resolved", "count": 1, "percentage": 33.3},
    ]
    assert all(entry["percentage"] == 0.0 for entry in status_breakdown([]))


def _seed_workflow(db):
    db.collections["issues"] = {
        "p1": {"reportId": "PS-000001", "description": "Loose bolt", "status": "pending",
               "createdAt": NOW - timedelta(hours=2), "reportedBy": {"uid": "citizen-1"}},
        "a1": {"reportId": "PS-000002", "description": "Broken swing", "status": "assigned",
               "assignedTo": "m@x.com", "createdAt": NOW - timedelta(days=1)},
        "w1": {"reportId": "PS-000003", "description": "Sharp edge", "status": "in-progress",
               "assignedTo": "m@x.com", "createdAt": NOW - timedelta(days=2)},
        "r1": {"reportId": "PS-000004", "description": "Litter", "status": "resolved",
               "assignedTo": "m@x.com", "adminApproved": False,
               "workCompletedAt": NOW - timedelta(hours=1), "resolvedBy": "m@x.com",
               "createdAt": NOW - timedelta(days=3)},
        "r2": {"reportId": "PS-000005", "description": "Slide crack", "status": "resolved",
               "assignedTo": "n@x.com", "adminApproved": True,
               "workCompletedAt": NOW - timedelta(days=1), "resolvedAt": NOW - timedelta(hours=3),
               "createdAt": NOW - timedelta(days=4), "reportedBy": {"uid": "citizen-1"}},
    }


@pytest.mark.asyncio
async def test_admin_dashboard(fake_db, admin, staff, other_staff):
    _seed_workflow(fake_db)
    data = await dashboard_service.admin_dashboard(now=NOW)

    stats = data["stats"]
    assert stats["pending"] == 1
    assert stats["resolvedToday"] == 1
    assert stats["activeStaff"] == 2
    assert stats["awaitingApproval"] == 1
    assert stats["total"] == 5
    assert stats["averageResponseTime"] != "N/A"

    assert [c["id"] for c in data["awaitingApproval"]] == ["r1"]
    assert [c["id"] for c in data["recentlyApproved"]] == ["r2"]
    workload = {s["email"]: s["openIssues"] for s in data["staff"]}
    assert workload == {"m@x.com": 2, "n@x.com": 0}
    assert data["issues"][0]["id"] == "p1"
    assert data["issues"][0]["createdAtDisplay"] == "10/09/2025"

    breakdown = {b["status"]: (b["count"], b["percentage"]) for b in data["statusBreakdown"]}
    assert breakdown == {
        "pending": (1, 20.0),
        "assigned": (1, 20.0),
        "in-progress": (1, 20.0),
        "resolved": (2, 40.0),
    }
    assert [c["id"] for c in data["recentActivity"]] == ["p1", "a1", "w1", "r1", "r2"]


@pytest.mark.asyncio
async def test_maintenance_dashboard_counts(fake_db, staff):
    _seed_workflow(fake_db)
    data = await dashboard_service.maintenance_dashboard(staff)
    assert data["counts"] == {
        "assigned": 1,
        "inProgress": 1,
        "awaitingApproval": 1,
        "approved": 0,
        "total": 3,
    }
    assert data["profile"]["name"] == "Meena S"


@pytest.mark.asyncio
async def test_citizen_dashboard_without_location(fake_db, citizen):
    _seed_workflow(fake_db)
    fake_db.collections["playgrounds"] = {
        "nehru": {"name": "Nehru Park", "latitude": 13.0569, "longitude": 80.2844},
    }
    data = await dashboard_service.citizen_dashboard(citizen, origin=None)
    assert {c["id"] for c in data["myReports"]} == {"p1", "r2"}
    assert data["myReportCounts"]["pending"] == 1
    assert data["myReportCounts"]["resolved"] == 1
    assert data["communityCounts"]["assigned"] == 1
    assert data["locationUsed"] is False
    assert data["nearbyPlaygrounds"][0]["distanceDisplay"] is None
