"""
Pydantic models for civic issues and the SLA / priority records attached to them.

Persisted field names are camelCase (slaDays, slaEndDate, ...) and are kept as
aliases so stored documents round-trip unchanged. Python code uses the
snake_case attribute names.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum
import logging

from civictrack.utils.timeutils import parse_timestamp, to_iso

logger = logging.getLogger(__name__)


class Priority(str, Enum):
    """
    Ordinal severity level: LOW < MEDIUM < HIGH < CRITICAL.

    Canonical representation is lowercase. Use `rank` for comparisons,
    never the string value.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def parse(cls, value: Any) -> Optional["Priority"]:
        """Case-insensitive lookup; None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


_PRIORITY_RANKS = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.CRITICAL: 3,
}


class IssueStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    ESCALATED = "escalated"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({IssueStatus.RESOLVED, IssueStatus.REJECTED})


class SLAStatus(str, Enum):
    ON_TRACK = "ON_TRACK"
    AT_RISK = "AT_RISK"
    BREACHED = "BREACHED"


class SLAOutcome(str, Enum):
    """Recorded once, when an issue is resolved."""
    WITHIN_SLA = "WITHIN_SLA"
    BREACHED = "BREACHED"


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


def _coerce_iso(value: Any) -> Any:
    if isinstance(value, datetime) or hasattr(value, "ToDatetime"):
        parsed = parse_timestamp(value)
        return to_iso(parsed) if parsed else None
    return value


class Issue(BaseModel):
    """
    A citizen-reported issue as stored in the issues collection.

    Every SLA field is optional: records created before SLA tracking existed
    have none of them and are upgraded by the lazy migration gate on read.
    """
    id: Optional[str] = None
    uid: Optional[str] = Field(None, description="Reporting citizen")
    title: str = ""
    description: str = ""
    category: str = "other"
    priority: Optional[Priority] = None
    status: IssueStatus = IssueStatus.PENDING
    coordinates: Optional[Coordinates] = None

    sla_days: Optional[int] = Field(None, alias="slaDays")
    sla_start_date: Optional[str] = Field(None, alias="slaStartDate")
    sla_end_date: Optional[str] = Field(None, alias="slaEndDate")
    days_remaining: Optional[float] = Field(None, alias="daysRemaining")
    sla_status: Optional[SLAStatus] = Field(None, alias="slaStatus")
    admin_escalated_priority: Optional[Priority] = Field(None, alias="adminEscalatedPriority")
    sla_outcome: Optional[SLAOutcome] = Field(None, alias="slaOutcome")

    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    resolved_at: Optional[str] = Field(None, alias="resolvedAt")
    rejected_at: Optional[str] = Field(None, alias="rejectedAt")

    ai_analysis: Optional[Dict[str, Any]] = Field(None, alias="aiAnalysis")
    status_history: List[Dict[str, Any]] = Field(default_factory=list, alias="statusHistory")

    class Config:
        populate_by_name = True
        extra = "allow"  # Keep fields owned by other parts of the system (files, verifications, ...)

    @field_validator("priority", "admin_escalated_priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value):
        if value is None:
            return None
        parsed = Priority.parse(value)
        if parsed is None:
            logger.warning(f"Ignoring unrecognised priority value: {value!r}")
        return parsed

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        if isinstance(value, IssueStatus):
            return value
        if not isinstance(value, str):
            return IssueStatus.PENDING
        normalized = value.strip().lower().replace("_", "-")
        try:
            return IssueStatus(normalized)
        except ValueError:
            logger.warning(f"Unknown issue status {value!r}, treating as pending")
            return IssueStatus.PENDING

    @field_validator("sla_status", mode="before")
    @classmethod
    def _normalize_sla_status(cls, value):
        if value is None or isinstance(value, SLAStatus):
            return value
        try:
            return SLAStatus(str(value).strip().upper())
        except ValueError:
            return None

    @field_validator("status_history", mode="before")
    @classmethod
    def _default_history(cls, value):
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]

    @field_validator("title", "description", mode="before")
    @classmethod
    def _default_text(cls, value):
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value):
        if not value:
            return "other"
        return value if isinstance(value, str) else str(value)

    @field_validator("coordinates", mode="before")
    @classmethod
    def _normalize_coordinates(cls, value):
        """Missing, unparseable or out-of-range stored coordinates read as None."""
        if value is None or isinstance(value, Coordinates):
            return value
        if isinstance(value, dict):
            lat = value.get("lat", value.get("latitude"))
            lng = value.get("lng", value.get("longitude"))
        else:
            # Firestore GeoPoint
            lat = getattr(value, "latitude", None)
            lng = getattr(value, "longitude", None)
        try:
            lat, lng = float(lat), float(lng)
        except (TypeError, ValueError):
            return None
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            logger.warning(f"Ignoring out-of-range coordinates: lat={lat}, lng={lng}")
            return None
        return {"lat": lat, "lng": lng}

    @field_validator(
        "sla_start_date", "sla_end_date", "created_at", "updated_at", "resolved_at", "rejected_at",
        mode="before",
    )
    @classmethod
    def _normalize_timestamps(cls, value):
        return _coerce_iso(value)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def sla_end(self) -> Optional[datetime]:
        return parse_timestamp(self.sla_end_date)

    @property
    def sla_start(self) -> Optional[datetime]:
        return parse_timestamp(self.sla_start_date)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Issue":
        return cls.model_validate({**data, "id": doc_id})

    def to_document(self) -> Dict[str, Any]:
        """Document body for storage (id is the document key, not a field)."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"id"}, mode="json")


class SLARecord(BaseModel):
    """Initial SLA fields written when an issue is created."""
    sla_days: int = Field(..., alias="slaDays")
    sla_start_date: str = Field(..., alias="slaStartDate")
    sla_end_date: str = Field(..., alias="slaEndDate")
    days_remaining: float = Field(..., alias="daysRemaining")
    sla_status: SLAStatus = Field(SLAStatus.ON_TRACK, alias="slaStatus")
    admin_escalated_priority: Priority = Field(Priority.LOW, alias="adminEscalatedPriority")

    class Config:
        populate_by_name = True

    def as_fields(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class SLAUpdate(BaseModel):
    """Result of re-evaluating an open issue's SLA at some instant."""
    days_remaining: float = Field(..., alias="daysRemaining")
    sla_status: SLAStatus = Field(..., alias="slaStatus")
    admin_escalated_priority: Priority = Field(..., alias="adminEscalatedPriority")
    newly_breached: bool = Field(False, exclude=True)

    class Config:
        populate_by_name = True

    def as_fields(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ExternalSignal(BaseModel):
    """
    Opaque priority signal from a hosted classifier.

    Only priority and confidence drive decisions; the rest is kept for audit.
    """
    priority: Priority
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: Optional[str] = None
    safety_risk: Optional[str] = Field(None, alias="safetyRisk")
    suggested_action: Optional[str] = Field(None, alias="suggestedAction")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, value):
        parsed = Priority.parse(value)
        if parsed is None:
            raise ValueError(f"Unknown priority {value!r}")
        return parsed


class PriorityResult(BaseModel):
    priority: Priority
    confidence: float
    reasoning: str
    analysis: Dict[str, Any] = Field(default_factory=dict)


class IssueCreate(BaseModel):
    """Incoming submission. Upload and identity are handled upstream."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    category: str = Field(..., min_length=1, max_length=50)
    coordinates: Optional[Coordinates] = None
    uid: Optional[str] = Field(None, description="Reporting citizen id from the session layer")
    media_urls: List[str] = Field(default_factory=list, alias="mediaUrls")
    external_signal: Optional[Dict[str, Any]] = Field(
        None,
        alias="externalSignal",
        description=(
            "Pre-computed classifier output from a trusted upstream layer. Ignored unless "
            "TRUST_CLIENT_EXTERNAL_SIGNAL is enabled; when absent the configured provider is asked"
        ),
    )

    class Config:
        populate_by_name = True
        extra = "ignore"
        json_schema_extra = {
            "example": {
                "title": "Pothole near bus stop",
                "description": "Large pothole, urgent safety hazard for two-wheelers",
                "category": "pothole",
                "coordinates": {"lat": 18.5204, "lng": 73.8567},
                "uid": "citizen-123",
            }
        }


class StatusActionRequest(BaseModel):
    """Staff action on an issue (plan / escalate / reject / resolve)."""
    actor_id: str = Field(..., alias="actorId", description="Staff user performing the action")
    note: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True


class Cluster(BaseModel):
    """Transient hotspot: never persisted, recomputed per request."""
    id: str
    center: Coordinates
    radius: float
    issues: List[Issue]
    target_user_ids: List[str] = Field(default_factory=list, alias="targetUserIds")

    class Config:
        populate_by_name = True
