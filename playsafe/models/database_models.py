from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Any
from datetime import datetime
from enum import Enum


class IssueStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IssueCategory(str, Enum):
    BROKEN_EQUIPMENT = "broken-equipment"
    SURFACE_DAMAGE = "surface-damage"
    LITTER_DEBRIS = "litter-debris"
    VANDALISM = "vandalism"
    SAFETY_HAZARD = "safety-hazard"
    MAINTENANCE_NEEDED = "maintenance-needed"
    OTHER = "other"


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    REASSIGNED = "reassigned"


class PlaygroundStatus(str, Enum):
    GOOD = "Good"
    ATTENTION = "Attention"
    URGENT = "Urgent"


def _coerce_enum(value: Any, enum_cls, default):
    # Stored enums are open strings; anything unrecognised reads as the default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return default


_NON_NULLABLE_ISSUE_FIELDS = (
    "description", "category", "reportedBy", "adminApproved", "directResolution",
    "photoUrls", "completionProof", "completionNotes",
)


# Reporter identity captured when the issue is filed; never refreshed
class ReporterSnapshot(BaseModel):
    uid: str = ""
    email: str = ""
    firstName: str = "Unknown"
    lastName: str = "User"


class Issue(BaseModel):
    id: Optional[str] = None
    reportId: Optional[str] = None  # e.g., "PS-123456"
    title: str = "Untitled Issue"
    description: str = ""
    category: str = IssueCategory.OTHER.value
    severity: IssueSeverity = IssueSeverity.MEDIUM
    location: str = "Unknown Location"
    playgroundId: Optional[str] = None
    status: IssueStatus = IssueStatus.PENDING

    assignedTo: Optional[str] = None  # maintenance staff email
    assignedAt: Optional[datetime] = None
    assignedBy: Optional[str] = None
    adminApproved: bool = False
    directResolution: bool = False

    reportedBy: ReporterSnapshot = Field(default_factory=ReporterSnapshot)
    resolvedBy: Optional[str] = None

    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    workCompletedAt: Optional[datetime] = None
    resolvedAt: Optional[datetime] = None

    photoUrls: List[str] = Field(default_factory=list)
    completionProof: List[str] = Field(default_factory=list)
    completionNotes: str = ""

    @model_validator(mode="before")
    @classmethod
    def _fill_missing(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in _NON_NULLABLE_ISSUE_FIELDS:
            if key in data and data[key] is None:
                del data[key]
        if not data.get("title"):
            data["title"] = data.get("description") or "Untitled Issue"
        if not data.get("location"):
            data["location"] = "Unknown Location"
        return data

    @field_validator("severity", mode="before")
    @classmethod
    def _default_severity(cls, value):
        return _coerce_enum(value, IssueSeverity, IssueSeverity.MEDIUM)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return _coerce_enum(value, IssueStatus, IssueStatus.PENDING)

    @property
    def awaiting_approval(self) -> bool:
        return (
            self.status == IssueStatus.RESOLVED
            and not self.adminApproved
            and self.workCompletedAt is not None
        )


class Assignment(BaseModel):
    id: Optional[str] = None
    issueId: str
    issueTitle: str = ""
    issueLocation: str = ""
    issueSeverity: str = IssueSeverity.MEDIUM.value
    assignedTo: str
    assignedToName: str = ""
    assignedBy: str
    assignedAt: Optional[datetime] = None
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    notificationSent: bool = False
    completedAt: Optional[datetime] = None


class Playground(BaseModel):
    id: Optional[str] = None
    name: str = "Unknown Playground"
    address: str = "Unknown Address"
    latitude: float = 0.0
    longitude: float = 0.0
    description: str = ""
    amenities: List[str] = Field(default_factory=list)
    status: PlaygroundStatus = PlaygroundStatus.GOOD
    activeIssues: int = 0
    lastInspection: str = "No inspection recorded"
    distance: Optional[float] = None  # miles from the caller, only when known

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return _coerce_enum(value, PlaygroundStatus, PlaygroundStatus.GOOD)


class Notification(BaseModel):
    id: Optional[str] = None
    recipientId: str
    title: str
    message: str
    notificationType: str = "update"  # assignment, completion, approval, rejection, urgent, update
    issueId: Optional[str] = None
    priority: str = "medium"
    isRead: bool = False
    readAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
