"""
Pydantic Schemas for CARS-G Backend
===================================

Request and response bodies. Python attributes are snake_case; the JSON wire
format is camelCase (caseNumber, priorityLevel, isAdminReply, ...) to match
what the dashboards send and expect.

Request models are deliberately lenient (most fields optional) so that the
services can report missing fields as InvalidInput with a useful message.
"""

from typing import List, Optional, Dict
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt
from pydantic.alias_generators import to_camel

from .db.models import Role, ReportStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# SHARED
# =============================================================================

class Location(CamelModel):
    lat: float
    lng: float


class MessageResponse(CamelModel):
    """Plain acknowledgement"""
    message: str


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    service: str


# =============================================================================
# REPORTS
# =============================================================================

class CreateReportRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    is_anonymous: Optional[bool] = False
    location: Optional[Location] = None
    image_urls: Optional[List[str]] = None


class StatusUpdateRequest(CamelModel):
    status: Optional[str] = None


class AssignRequest(CamelModel):
    patrol_user_id: Optional[str] = None


class PriorityUpdateRequest(CamelModel):
    priority_level: Optional[StrictInt] = None


class ProofImagesRequest(CamelModel):
    proof_images: Optional[List[str]] = None


class ReportOut(CamelModel):
    id: str
    case_number: str
    title: str
    description: str
    category: str
    is_anonymous: bool = False
    location: Optional[Location] = None
    image_urls: List[str] = []
    proof_images: List[str] = []
    status: ReportStatus
    priority_level: int
    user_id: str
    patrol_user_id: Optional[str] = None
    points_awarded: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, report) -> "ReportOut":
        location = None
        if report.latitude is not None and report.longitude is not None:
            location = Location(lat=report.latitude, lng=report.longitude)
        return cls(
            id=report.id,
            case_number=report.case_number,
            title=report.title,
            description=report.description,
            category=report.category,
            is_anonymous=bool(report.is_anonymous),
            location=location,
            image_urls=list(report.image_urls or []),
            proof_images=list(report.proof_images or []),
            status=report.status,
            priority_level=report.priority_level,
            user_id=report.user_id,
            patrol_user_id=report.patrol_user_id,
            points_awarded=bool(report.points_awarded),
            created_at=report.created_at,
            updated_at=report.updated_at,
        )


class CreateReportResponse(ReportOut):
    message: str = "Report created successfully"


class ReportListResponse(CamelModel):
    reports: List[ReportOut]
    total: Optional[int] = None


# =============================================================================
# USERS & POINTS
# =============================================================================

class UserOut(CamelModel):
    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    role: Role
    points: int = 0
    is_banned: bool = False
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None

    @classmethod
    def from_model(cls, profile) -> "UserOut":
        return cls(
            id=profile.id,
            display_name=profile.display_name,
            email=profile.email,
            photo_url=profile.photo_url,
            role=profile.role,
            points=profile.points or 0,
            is_banned=bool(profile.is_banned),
            created_at=profile.created_at,
            last_active=profile.last_active,
        )


class UserListResponse(CamelModel):
    users: List[UserOut]
    total: int


class LeaderboardEntry(CamelModel):
    """Public view of a profile: no email or other contact details"""
    id: str
    display_name: Optional[str] = None
    points: int = 0
    role: Role
    photo_url: Optional[str] = Field(default=None, alias="photoURL")


class LeaderboardResponse(CamelModel):
    leaderboard: List[LeaderboardEntry]


class RoleUpdateRequest(CamelModel):
    role: Optional[str] = None


class BanRequest(CamelModel):
    is_banned: Optional[StrictBool] = None


class PointsAdjustRequest(CamelModel):
    points: Optional[StrictInt] = None
    reason: Optional[str] = None


class PointsLedgerOut(CamelModel):
    id: str
    user_id: str
    points: int
    reason: str
    balance_after: Optional[int] = None
    report_id: Optional[str] = None
    added_by: str
    timestamp: Optional[datetime] = None

    @classmethod
    def from_model(cls, entry) -> "PointsLedgerOut":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            points=entry.points,
            reason=entry.reason,
            balance_after=entry.balance_after,
            report_id=entry.report_id,
            added_by=entry.added_by,
            timestamp=entry.timestamp,
        )


class PointsAdjustResponse(CamelModel):
    message: str
    entry: PointsLedgerOut


class PointsLogResponse(CamelModel):
    entries: List[PointsLedgerOut]
    total: int


class UserStats(CamelModel):
    total_reports: int
    reports_by_status: Dict[str, int]
    reports_by_category: Dict[str, int]
    total_points: int


class UserStatsResponse(CamelModel):
    stats: UserStats


class ProfileUpdateRequest(CamelModel):
    display_name: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoURL")


class ProfileResponse(UserOut):
    uid: str


class SessionResponse(CamelModel):
    created: bool
    profile: UserOut


class OwnPointsResponse(CamelModel):
    points: int
    display_name: Optional[str] = None
    role: Role


# =============================================================================
# CHAT
# =============================================================================

class SendMessageRequest(CamelModel):
    text: Optional[str] = None


class ChatMessageOut(CamelModel):
    id: str
    text: str
    user_id: str
    user_display_name: Optional[str] = None
    user_role: Role
    is_admin_reply: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, message) -> "ChatMessageOut":
        return cls(
            id=message.id,
            text=message.text,
            user_id=message.user_id,
            user_display_name=message.user_display_name,
            user_role=message.user_role,
            is_admin_reply=bool(message.is_admin_reply),
            created_at=message.created_at,
        )


class SendMessageResponse(ChatMessageOut):
    message: str = "Message sent successfully"


class ChatMessageListResponse(CamelModel):
    messages: List[ChatMessageOut]


class LastMessage(CamelModel):
    text: str
    created_at: Optional[datetime] = None


class ConversationSummary(CamelModel):
    user_id: str
    user_display_name: str
    user_role: Role
    last_message: Optional[LastMessage] = None
    is_online: bool = False


class ConversationListResponse(CamelModel):
    conversations: List[ConversationSummary]
