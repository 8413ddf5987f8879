from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Enum as SQLEnum, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
from time_utils import utc_now
import enum


class UserRole(enum.Enum):
    PARTICIPANT = "participant"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class TaskType(enum.Enum):
    ASSIGNMENT = "assignment"
    PROJECT = "project"
    QUIZ = "quiz"
    PRESENTATION = "presentation"


class SubmissionType(enum.Enum):
    FILE = "file"
    LINK = "link"
    TEXT = "text"


class SubmissionStatus(enum.Enum):
    SUBMITTED = "submitted"
    GRADED = "graded"
    RETURNED = "returned"


class AttendanceSession(enum.Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    FULL_DAY = "full-day"


class AttendanceStatus(enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"


class AnnouncementPriority(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TargetAudience(enum.Enum):
    ALL = "all"
    PARTICIPANTS = "participants"
    ADMINS = "admins"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)  # always lower-cased
    hashed_password = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole, values_callable=_enum_values), default=UserRole.PARTICIPANT, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    total_score = Column(Integer, default=0, nullable=False)  # written by score_aggregator only
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    submissions = relationship("Submission", back_populates="user", foreign_keys="Submission.user_id")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    instructions = Column(Text, nullable=True)
    type = Column(SQLEnum(TaskType, values_callable=_enum_values), nullable=False)
    max_score = Column(Integer, nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    creator = relationship("User", foreign_keys=[created_by_id])
    submissions = relationship("Submission", back_populates="task")


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "task_id", name="uq_submissions_user_task"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    submission_type = Column(SQLEnum(SubmissionType, values_callable=_enum_values), nullable=False)
    content = Column(JSON, nullable=False)  # shape depends on submission_type, see schemas.SubmissionContent
    submitted_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    score = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)
    status = Column(SQLEnum(SubmissionStatus, values_callable=_enum_values), default=SubmissionStatus.SUBMITTED, nullable=False)
    graded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)
    is_late = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="submissions", foreign_keys=[user_id])
    task = relationship("Task", back_populates="submissions")
    grader = relationship("User", foreign_keys=[graded_by_id])


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("user_id", "date", "session", name="uq_attendance_user_date_session"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    session = Column(SQLEnum(AttendanceSession, values_callable=_enum_values), nullable=False)
    status = Column(SQLEnum(AttendanceStatus, values_callable=_enum_values), default=AttendanceStatus.PRESENT, nullable=False)
    marked_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    marked_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # null when self-marked
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])
    marked_by = relationship("User", foreign_keys=[marked_by_id])


class Announcement(Base):
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    priority = Column(SQLEnum(AnnouncementPriority, values_callable=_enum_values), default=AnnouncementPriority.MEDIUM, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    target_audience = Column(SQLEnum(TargetAudience, values_callable=_enum_values), default=TargetAudience.ALL, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    creator = relationship("User", foreign_keys=[created_by_id])
    attachments = relationship(
        "AnnouncementAttachment",
        back_populates="announcement",
        cascade="all, delete-orphan",
        order_by="AnnouncementAttachment.id",
    )
    reads = relationship(
        "AnnouncementRead",
        back_populates="announcement",
        cascade="all, delete-orphan",
        order_by="AnnouncementRead.read_at",
    )


class AnnouncementAttachment(Base):
    __tablename__ = "announcement_attachments"

    id = Column(Integer, primary_key=True, index=True)
    announcement_id = Column(Integer, ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    url = Column(String(500), nullable=False)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())

    announcement = relationship("Announcement", back_populates="attachments")


class AnnouncementRead(Base):
    __tablename__ = "announcement_reads"
    __table_args__ = (
        UniqueConstraint("announcement_id", "user_id", name="uq_announcement_reads_announcement_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    announcement_id = Column(Integer, ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    announcement = relationship("Announcement", back_populates="reads")
    user = relationship("User")


class AdminLog(Base):
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, nullable=True)
    admin_email = Column(String(255), nullable=False)
    admin_name = Column(String(255), nullable=False)
    action = Column(String(255), nullable=False)
    method = Column(String(10), nullable=True)
    path = Column(String(255), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
