from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
import logging

from ..core.config import settings
from ..models.database_models import Issue, IssueStatus, Playground
from ..models.user import UserProfile, UserRole
from .geo_service import format_distance
from .identity_service import identity_service
from .issue_service import issue_service
from .playground_service import playground_service

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def to_local_time(dt: datetime) -> datetime:
    """Convert a UTC datetime to the configured local timezone (TZ_OFFSET)"""
    # Naive values are stored UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone(timedelta(hours=settings.TZ_OFFSET)))


def format_date(value: Any) -> str:
    """Display date for a timestamp, ISO string or date; "N/A" when missing or unreadable."""
    if not value:
        return "N/A"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return "N/A"
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = to_local_time(value)
    try:
        return value.strftime("%d/%m/%Y")
    except AttributeError:
        return "N/A"


def issue_card(issue: Issue) -> Dict[str, Any]:
    card = issue.model_dump(mode="json")
    card.update({
        "createdAtDisplay": format_date(issue.createdAt),
        "resolvedAtDisplay": format_date(issue.resolvedAt),
        "workCompletedAtDisplay": format_date(issue.workCompletedAt),
        "awaitingApproval": issue.awaiting_approval,
    })
    return card


def playground_card(playground: Playground) -> Dict[str, Any]:
    card = playground.model_dump(mode="json")
    card["distanceDisplay"] = format_distance(playground.distance)
    return card


def count_by_status(issues: List[Issue]) -> Dict[str, int]:
    counts = {status.value: 0 for status in IssueStatus}
    for issue in issues:
        counts[issue.status.value] += 1
    return counts


def average_response_time(issues: List[Issue]) -> str:
    """Mean time from report to resolution over resolved issues, e.g. ``"2.5d"``."""
    durations = [
        (issue.resolvedAt - issue.createdAt).total_seconds()
        for issue in issues
        if issue.status == IssueStatus.RESOLVED and issue.resolvedAt and issue.createdAt
    ]
    if not durations:
        return "N/A"
    days = Decimal(str(sum(durations) / len(durations) / SECONDS_PER_DAY))
    return f"{days.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)}d"


def resolved_on(issues: List[Issue], day) -> int:
    """Issues resolved on ``day``, a date in the local timezone."""
    return sum(
        1 for issue in issues
        if issue.status == IssueStatus.RESOLVED and issue.resolvedAt
        and to_local_time(issue.resolvedAt).date() == day
    )


def status_breakdown(issues: List[Issue]) -> List[Dict[str, Any]]:
    counts = count_by_status(issues)
    total = len(issues)
    breakdown = []
    for status, count in counts.items():
        percentage = Decimal(0)
        if total:
            percentage = (Decimal(count) * 100 / total).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        breakdown.append({"status": status, "count": count, "percentage": float(percentage)})
    return breakdown


class DashboardService:
    def __init__(self):
        self.issues = issue_service
        self.playgrounds = playground_service
        self.identity = identity_service

    async def admin_dashboard(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        issues = await self.issues.list_issues()
        staff = await self.identity.list_by_role(UserRole.MAINTENANCE)
        playgrounds = await self.playgrounds.with_active_issues(await self.playgrounds.list_playgrounds())

        open_statuses = (IssueStatus.ASSIGNED, IssueStatus.IN_PROGRESS)
        workload = []
        for member in staff:
            open_issues = [
                i for i in issues
                if i.status in open_statuses and (i.assignedTo or "").lower() == member.email.lower()
            ]
            workload.append({
                "uid": member.uid,
                "email": member.email,
                "name": member.full_name,
                "openIssues": len(open_issues),
            })

        return {
            "stats": {
                "pending": sum(1 for i in issues if i.status == IssueStatus.PENDING),
                "resolvedToday": resolved_on(issues, to_local_time(now).date()),
                "averageResponseTime": average_response_time(issues),
                "activeStaff": len(staff),
                "awaitingApproval": sum(1 for i in issues if i.awaiting_approval),
                "total": len(issues),
            },
            "statusBreakdown": status_breakdown(issues),
            "issues": [issue_card(i) for i in issues],
            "recentActivity": [issue_card(i) for i in issues[:5]],
            "awaitingApproval": [issue_card(i) for i in issues if i.awaiting_approval],
            "recentlyApproved": [issue_card(i) for i in issues if i.adminApproved][:5],
            "staff": workload,
            "playgrounds": [playground_card(p) for p in playgrounds],
        }

    async def citizen_dashboard(self, profile: UserProfile,
                                origin: Optional[Tuple[float, float]] = None) -> Dict[str, Any]:
        my_reports = await self.issues.list_reported_by(profile.uid)
        community = await self.issues.list_issues()
        nearby = await self.playgrounds.nearby(origin, settings.NEARBY_PLAYGROUND_LIMIT)

        return {
            "profile": {"uid": profile.uid, "email": profile.email, "name": profile.full_name},
            "myReports": [issue_card(i) for i in my_reports],
            "myReportCounts": count_by_status(my_reports),
            "communityCounts": count_by_status(community),
            "recentCommunityIssues": [issue_card(i) for i in community[:10]],
            "nearbyPlaygrounds": [playground_card(p) for p in nearby],
            "locationUsed": origin is not None,
        }

    async def maintenance_dashboard(self, profile: UserProfile) -> Dict[str, Any]:
        assigned = await self.issues.list_assigned_to(profile.email)
        return {
            "profile": {"uid": profile.uid, "email": profile.email, "name": profile.full_name},
            "issues": [issue_card(i) for i in assigned],
            "counts": {
                "assigned": sum(1 for i in assigned if i.status == IssueStatus.ASSIGNED),
                "inProgress": sum(1 for i in assigned if i.status == IssueStatus.IN_PROGRESS),
                "awaitingApproval": sum(1 for i in assigned if i.awaiting_approval),
                "approved": sum(1 for i in assigned if i.adminApproved),
                "total": len(assigned),
            },
        }


dashboard_service = DashboardService()
