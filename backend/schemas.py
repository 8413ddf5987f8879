from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator
from typing import Annotated, Optional, List, Dict, Any, Literal, Union
from datetime import datetime, date
from urllib.parse import urlparse

from models import (
    AnnouncementPriority,
    AttendanceSession,
    AttendanceStatus,
    SubmissionStatus,
    SubmissionType,
    TargetAudience,
    TaskType,
    UserRole,
)


def _normalize_http_url(value: Optional[str], field_name: str, max_length: int = 500) -> str:
    raw = str(value or "").strip()
    if not raw:
        raise ValueError(f"{field_name} is required")
    if len(raw) > max_length:
        raise ValueError(f"{field_name} must be at most {max_length} characters")
    parsed = urlparse(raw)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"{field_name} must be a valid http/https URL")
    return raw


def _normalize_file_url(value: Optional[str], field_name: str, max_length: int = 500) -> str:
    raw = str(value or "").strip()
    if raw.startswith("/"):
        if len(raw) > max_length:
            raise ValueError(f"{field_name} must be at most {max_length} characters")
        return raw
    return _normalize_http_url(raw, field_name, max_length=max_length)


class PageMeta(BaseModel):
    current_page: int
    total_pages: int
    total: int
    has_next_page: bool
    has_prev_page: bool


# Auth Schemas
class UserRegister(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError('Name must be at least 2 characters')
        return v


class AdminRegister(UserRegister):
    role: UserRole = UserRole.ADMIN


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: "UserResponse"


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    role: UserRole
    is_active: bool
    total_score: int
    created_at: Optional[datetime] = None


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserStats(BaseModel):
    total_submissions: int
    graded_submissions: int
    attendance: "AttendanceBreakdown"


class UserDetailResponse(BaseModel):
    user: UserResponse
    stats: UserStats


class UserListResponse(BaseModel):
    users: List[UserResponse]
    pagination: PageMeta


# Task Schemas
class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    instructions: Optional[str] = None
    type: TaskType
    max_score: int = Field(..., gt=0)
    deadline: datetime


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    instructions: Optional[str] = None
    type: Optional[TaskType] = None
    max_score: Optional[int] = Field(None, gt=0)
    deadline: Optional[datetime] = None
    is_active: Optional[bool] = None


class TaskBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    type: TaskType
    max_score: int
    deadline: datetime


class UserSubmissionStatus(BaseModel):
    has_submitted: bool
    status: Optional[SubmissionStatus] = None
    score: Optional[int] = None
    submitted_at: Optional[datetime] = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    instructions: Optional[str] = None
    type: TaskType
    max_score: int
    deadline: datetime
    is_active: bool
    is_overdue: bool = False
    created_by: Optional[UserBrief] = None
    created_at: Optional[datetime] = None
    user_submission: Optional[UserSubmissionStatus] = None


class TaskStatusStat(BaseModel):
    count: int
    avg_score: float


class TaskDetailResponse(BaseModel):
    task: TaskResponse
    stats: Dict[str, TaskStatusStat]
    user_submission: Optional["SubmissionResponse"] = None


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    pagination: PageMeta


# Submission Schemas
class FileContent(BaseModel):
    submission_type: Literal["file"] = "file"
    file_url: str
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., ge=0)

    @field_validator('file_url')
    @classmethod
    def validate_file_url(cls, v):
        return _normalize_file_url(v, "file_url")


class LinkContent(BaseModel):
    submission_type: Literal["link"] = "link"
    link: str
    link_title: str = Field("", max_length=255)

    @field_validator('link')
    @classmethod
    def validate_link(cls, v):
        return _normalize_http_url(v, "link")


class TextContent(BaseModel):
    submission_type: Literal["text"] = "text"
    text: str = Field(..., min_length=1, max_length=20000)


SubmissionContent = Annotated[Union[FileContent, LinkContent, TextContent], Field(discriminator="submission_type")]
SUBMISSION_CONTENT_ADAPTER = TypeAdapter(SubmissionContent)


def content_payload(content) -> Dict[str, Any]:
    return content.model_dump(exclude={"submission_type"})


def content_from_row(submission_type: SubmissionType, payload: Optional[Dict[str, Any]]):
    return SUBMISSION_CONTENT_ADAPTER.validate_python({**(payload or {}), "submission_type": submission_type.value})


class SubmissionCreate(BaseModel):
    task_id: int
    content: SubmissionContent


class SubmissionResponse(BaseModel):
    id: int
    user_id: int
    task_id: int
    submission_type: SubmissionType
    content: SubmissionContent
    submitted_at: datetime
    score: Optional[int] = None
    feedback: Optional[str] = None
    status: SubmissionStatus
    graded_by_id: Optional[int] = None
    graded_at: Optional[datetime] = None
    is_late: bool
    user: Optional[UserBrief] = None
    task: Optional[TaskBrief] = None
    grader: Optional[UserBrief] = None


class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionResponse]
    pagination: PageMeta


class GradeRequest(BaseModel):
    score: int
    feedback: Optional[str] = Field(None, max_length=5000)


class ReturnRequest(BaseModel):
    feedback: Optional[str] = Field(None, max_length=5000)


class GradeResponse(BaseModel):
    submission: SubmissionResponse
    total_score: Optional[int] = None
    score_synced: bool


# Attendance Schemas
class AttendanceMark(BaseModel):
    date: date
    session: AttendanceSession
    status: AttendanceStatus = AttendanceStatus.PRESENT
    remarks: Optional[str] = Field(None, max_length=500)


class AttendanceBulkMark(AttendanceMark):
    user_ids: List[int] = Field(..., min_length=1, max_length=500)


class AttendanceUpdate(BaseModel):
    status: Optional[AttendanceStatus] = None
    remarks: Optional[str] = Field(None, max_length=500)


class AttendanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    date: date
    session: AttendanceSession
    status: AttendanceStatus
    marked_at: datetime
    marked_by_id: Optional[int] = None
    remarks: Optional[str] = None
    user: Optional[UserBrief] = None


class AttendanceListResponse(BaseModel):
    attendance: List[AttendanceResponse]
    pagination: PageMeta
    stats: Optional["AttendanceBreakdown"] = None


class AttendanceBreakdown(BaseModel):
    present: int = 0
    absent: int = 0
    late: int = 0
    total: int = 0
    rate: float = 0.0


class DailyAttendanceTrend(BaseModel):
    date: date
    breakdown: AttendanceBreakdown


class AttendanceStatsResponse(BaseModel):
    start_date: date
    end_date: date
    overall: AttendanceBreakdown
    daily_trends: List[DailyAttendanceTrend]
    per_user: Dict[int, AttendanceBreakdown]


class BulkAttendanceFailure(BaseModel):
    user_id: int
    error: str
    reason: str


class BulkAttendanceResponse(BaseModel):
    succeeded: List[AttendanceResponse]
    failed: List[BulkAttendanceFailure]


class CanMarkAttendanceResponse(BaseModel):
    can_mark: bool
    already_marked: bool
    existing_record: Optional[AttendanceResponse] = None


class TodayAttendanceResponse(BaseModel):
    date: date
    attendance: List[AttendanceResponse]
    stats: AttendanceBreakdown


# Announcement Schemas
class AttachmentIn(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    url: str

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        return _normalize_file_url(v, "url")


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    url: str
    uploaded_at: Optional[datetime] = None


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    priority: AnnouncementPriority = AnnouncementPriority.MEDIUM
    target_audience: TargetAudience = TargetAudience.ALL
    expires_at: Optional[datetime] = None
    attachments: List[AttachmentIn] = Field(default_factory=list)


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    priority: Optional[AnnouncementPriority] = None
    target_audience: Optional[TargetAudience] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None
    attachments: List[AttachmentIn] = Field(default_factory=list)


class AnnouncementResponse(BaseModel):
    id: int
    title: str
    content: str
    priority: AnnouncementPriority
    is_active: bool
    target_audience: TargetAudience
    created_by: Optional[UserBrief] = None
    expires_at: Optional[datetime] = None
    is_expired: bool
    created_at: datetime
    attachments: List[AttachmentResponse] = Field(default_factory=list)


class AnnouncementListResponse(BaseModel):
    announcements: List[AnnouncementResponse]
    pagination: Optional[PageMeta] = None


class UnreadCountResponse(BaseModel):
    unread_count: int


class ReadReceiptResponse(BaseModel):
    user_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    read_at: datetime


class ReadStatisticsResponse(BaseModel):
    announcement_id: int
    title: str
    target_audience: TargetAudience
    total_target_users: int
    read_count: int
    unread_count: int
    read_percentage: float
    read_by: List[ReadReceiptResponse]


# Leaderboard / dashboard
class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    name: str
    email: str
    total_score: int


class DashboardStats(BaseModel):
    users: Dict[str, int]
    submissions: Dict[str, int]
    attendance: Dict[str, int]


class RecomputeResponse(BaseModel):
    user_id: int
    total_score: int


class RecomputeAllResponse(BaseModel):
    users_processed: int
    totals: Dict[int, int]


class AdminLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    admin_id: Optional[int] = None
    admin_email: str
    admin_name: str
    action: str
    method: Optional[str] = None
    path: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


# Uploads
class PresignRequest(BaseModel):
    filename: str = Field(..., min_length=1)
    content_type: str = Field(..., min_length=1)


class PresignResponse(BaseModel):
    upload_url: str
    public_url: str
    key: str
    content_type: str


class SubmissionPresignRequest(PresignRequest):
    task_id: int


class SubmissionDeleteResponse(BaseModel):
    message: str
    total_score: Optional[int] = None
    score_synced: bool = True


TokenResponse.model_rebuild()
UserStats.model_rebuild()
TaskDetailResponse.model_rebuild()
AttendanceListResponse.model_rebuild()
