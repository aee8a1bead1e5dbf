import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from psychx.models.base import Base, JSONType


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    CONSULTANT = "CONSULTANT"


class SubscriptionTier(str, Enum):
    FREE = "FREE"
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"


class SessionStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


ACTIVE_SLOT_CONDITION = text("status != 'Cancelled'")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role_created_at", "role", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=UserRole.USER.value)
    # Consultants and admins carry no tier.
    tier: Mapped[str | None] = mapped_column(String(16), nullable=True)
    current_class: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ConsultantAvailability(Base):
    __tablename__ = "consultant_availability"
    __table_args__ = (
        UniqueConstraint("consultant_id", name="uq_consultant_availability_consultant"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    consultant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    days: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class ConsultationSession(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        Index("idx_sessions_student_id", "student_id"),
        Index("idx_sessions_consultant_slot", "consultant_id", "date", "time"),
        # At most one live booking per (consultant, date, time); cancelled rows do not count.
        Index(
            "uq_sessions_active_slot",
            "consultant_id",
            "date",
            "time",
            unique=True,
            postgresql_where=ACTIVE_SLOT_CONDITION,
            sqlite_where=ACTIVE_SLOT_CONDITION,
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    student_id: Mapped[str] = mapped_column(String(36), nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    consultant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    consultant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SessionStatus.SCHEDULED.value)
    meeting_link: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class RoadmapEntry(Base):
    __tablename__ = "roadmaps"
    __table_args__ = (
        Index("idx_roadmaps_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    career_title: Mapped[str] = mapped_column(String(255), nullable=False)
    steps: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ProgressTracker(Base):
    __tablename__ = "progress_trackers"
    __table_args__ = (
        Index("idx_progress_trackers_user_created_at", "user_id", "created_at"),
        Index("idx_progress_trackers_roadmap_id", "roadmap_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    roadmap_id: Mapped[str] = mapped_column(String(36), nullable=False)
    career_title: Mapped[str] = mapped_column(String(255), nullable=False)
    current_phase_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_weeks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overall_progress_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    history: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    current_week: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    pending_quiz: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class AssessmentResult(Base):
    __tablename__ = "assessment_results"
    __table_args__ = (
        Index("idx_assessment_results_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recommendations: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
