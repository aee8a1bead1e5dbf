from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.core.errors import EmailTakenError, SlotConflictError
from psychx.models.entities import (
    AssessmentResult,
    ConsultantAvailability,
    ConsultationSession,
    ProgressTracker,
    RoadmapEntry,
    SessionStatus,
    User,
    UserRole,
)

logger = logging.getLogger(__name__)


class _Store:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit_refresh(self, row):
        await self.db.commit()
        await self.db.refresh(row)
        return row


class UserStore(_Store):
    async def list_all(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.created_at, User.id))
        return list(result.scalars().all())

    async def get_by_id(self, user_id: str) -> User | None:
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
        return result.scalar_one_or_none()

    async def list_by_role(self, role: UserRole) -> list[User]:
        result = await self.db.execute(
            select(User).where(User.role == role.value).order_by(User.created_at, User.id)
        )
        return list(result.scalars().all())

    async def create(self, **fields) -> User:
        user = User(**fields)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise EmailTakenError(
                "User with this email already exists.", details={"email": fields.get("email")}
            ) from exc
        await self.db.refresh(user)
        return user

    async def update(self, user: User, **fields) -> User:
        for key, value in fields.items():
            setattr(user, key, value)
        return await self._commit_refresh(user)


class AvailabilityStore(_Store):
    async def list_all(self) -> list[ConsultantAvailability]:
        result = await self.db.execute(select(ConsultantAvailability))
        return list(result.scalars().all())

    async def get_by_consultant_id(self, consultant_id: str) -> ConsultantAvailability | None:
        result = await self.db.execute(
            select(ConsultantAvailability).where(ConsultantAvailability.consultant_id == consultant_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, consultant_id: str, *, days: list[str], start_time: str, end_time: str):
        row = await self.get_by_consultant_id(consultant_id)
        if row is None:
            row = ConsultantAvailability(consultant_id=consultant_id)
            self.db.add(row)
        row.days = list(days)
        row.start_time = start_time
        row.end_time = end_time
        return await self._commit_refresh(row)

    async def delete(self, consultant_id: str) -> bool:
        row = await self.get_by_consultant_id(consultant_id)
        if row is None:
            return False
        await self.db.delete(row)
        await self.db.commit()
        return True


class SessionLedger(_Store):
    """Persisted consultation sessions. The database enforces one live booking per consultant slot."""

    async def list_all(self) -> list[ConsultationSession]:
        result = await self.db.execute(
            select(ConsultationSession).order_by(ConsultationSession.date, ConsultationSession.time)
        )
        return list(result.scalars().all())

    async def get_by_id(self, session_id: str) -> ConsultationSession | None:
        return await self.db.get(ConsultationSession, session_id)

    async def list_by_student(self, student_id: str) -> list[ConsultationSession]:
        result = await self.db.execute(
            select(ConsultationSession)
            .where(ConsultationSession.student_id == student_id)
            .order_by(ConsultationSession.date, ConsultationSession.time)
        )
        return list(result.scalars().all())

    async def list_by_consultant(self, consultant_id: str) -> list[ConsultationSession]:
        result = await self.db.execute(
            select(ConsultationSession)
            .where(ConsultationSession.consultant_id == consultant_id)
            .order_by(ConsultationSession.date, ConsultationSession.time)
        )
        return list(result.scalars().all())

    async def has_conflict(
        self, consultant_id: str, date: str, time: str, *, exclude_id: str | None = None
    ) -> bool:
        stmt = select(func.count(ConsultationSession.id)).where(
            ConsultationSession.consultant_id == consultant_id,
            ConsultationSession.date == date,
            ConsultationSession.time == time,
            ConsultationSession.status != SessionStatus.CANCELLED.value,
        )
        if exclude_id:
            stmt = stmt.where(ConsultationSession.id != exclude_id)
        count = (await self.db.execute(stmt)).scalar_one()
        return count > 0

    async def create(self, **fields) -> ConsultationSession:
        row = ConsultationSession(**fields)
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise SlotConflictError(
                "This slot was just taken.",
                details={
                    "consultant_id": fields.get("consultant_id"),
                    "date": fields.get("date"),
                    "time": fields.get("time"),
                },
            ) from exc
        await self.db.refresh(row)
        return row

    async def update(self, row: ConsultationSession, **fields) -> ConsultationSession:
        for key, value in fields.items():
            setattr(row, key, value)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise SlotConflictError(
                "The consultant already has a session at that time.",
                details={"session_id": row.id},
            ) from exc
        await self.db.refresh(row)
        return row

    async def delete(self, row: ConsultationSession) -> None:
        await self.db.delete(row)
        await self.db.commit()

    async def last_assignment_times(self, consultant_ids: list[str]) -> dict[str, object]:
        """Most recent booking creation time per consultant; consultants never booked are absent."""
        if not consultant_ids:
            return {}
        result = await self.db.execute(
            select(ConsultationSession.consultant_id, func.max(ConsultationSession.created_at))
            .where(ConsultationSession.consultant_id.in_(consultant_ids))
            .group_by(ConsultationSession.consultant_id)
        )
        return {consultant_id: latest for consultant_id, latest in result.all()}


class RoadmapStore(_Store):
    async def list_by_user(self, user_id: str) -> list[RoadmapEntry]:
        result = await self.db.execute(
            select(RoadmapEntry)
            .where(RoadmapEntry.user_id == user_id)
            .order_by(RoadmapEntry.created_at.desc(), RoadmapEntry.id)
        )
        return list(result.scalars().all())

    async def get_by_id(self, roadmap_id: str) -> RoadmapEntry | None:
        return await self.db.get(RoadmapEntry, roadmap_id)

    async def count_by_user(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(RoadmapEntry.id)).where(RoadmapEntry.user_id == user_id)
        )
        return int(result.scalar_one())

    async def create(self, *, user_id: str, career_title: str, steps: list[dict]) -> RoadmapEntry:
        row = RoadmapEntry(user_id=user_id, career_title=career_title, steps=steps)
        self.db.add(row)
        return await self._commit_refresh(row)

    async def delete(self, row: RoadmapEntry) -> None:
        await self.db.delete(row)
        await self.db.commit()


class TrackerStore(_Store):
    async def get_by_id(self, tracker_id: str) -> ProgressTracker | None:
        return await self.db.get(ProgressTracker, tracker_id)

    async def list_by_user(self, user_id: str) -> list[ProgressTracker]:
        result = await self.db.execute(
            select(ProgressTracker)
            .where(ProgressTracker.user_id == user_id)
            .order_by(ProgressTracker.created_at, ProgressTracker.id)
        )
        return list(result.scalars().all())

    async def get_first_for_user(self, user_id: str) -> ProgressTracker | None:
        trackers = await self.list_by_user(user_id)
        return trackers[0] if trackers else None

    async def get_for_roadmap(self, user_id: str, roadmap_id: str) -> ProgressTracker | None:
        result = await self.db.execute(
            select(ProgressTracker).where(
                ProgressTracker.user_id == user_id, ProgressTracker.roadmap_id == roadmap_id
            )
        )
        return result.scalars().first()

    async def create(self, **fields) -> ProgressTracker:
        row = ProgressTracker(**fields)
        self.db.add(row)
        return await self._commit_refresh(row)

    async def save(self, row: ProgressTracker) -> ProgressTracker:
        # JSON columns are replaced wholesale by callers, so plain assignment marks them dirty.
        return await self._commit_refresh(row)

    async def delete(self, row: ProgressTracker) -> None:
        await self.db.delete(row)
        await self.db.commit()


class AssessmentStore(_Store):
    async def create(self, *, user_id: str, recommendations: list[dict]) -> AssessmentResult:
        row = AssessmentResult(user_id=user_id, recommendations=recommendations)
        self.db.add(row)
        return await self._commit_refresh(row)

    async def latest_by_user(self, user_id: str) -> AssessmentResult | None:
        result = await self.db.execute(
            select(AssessmentResult)
            .where(AssessmentResult.user_id == user_id)
            .order_by(AssessmentResult.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_by_user(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(AssessmentResult.id)).where(AssessmentResult.user_id == user_id)
        )
        return int(result.scalar_one())
