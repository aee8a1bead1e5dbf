"""Admin API: session management, consultant overview and learner tiers."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.api.auth import UserOut, user_out
from psychx.api.booking import session_out
from psychx.api.users import TierUpdate, change_tier
from psychx.core.auth import require_role
from psychx.core.errors import InvalidInputError, NotFoundError, SlotConflictError
from psychx.core.logging import DOMAIN_SCHEDULING, get_domain_logger
from psychx.memory.database import get_db
from psychx.memory.records import AvailabilityStore, SessionLedger, UserStore
from psychx.models.entities import SessionStatus, User, UserRole
from psychx.orchestrator.booking import normalize_time, parse_booking_date
from psychx.schemas.booking import (
    AdminSessionCreate,
    AdminSessionUpdate,
    AvailabilityOut,
    ConsultantOut,
    SessionOut,
)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_role(UserRole.ADMIN))])
logger = get_domain_logger(__name__, DOMAIN_SCHEDULING)


def _status(value: str) -> str:
    try:
        return SessionStatus(value).value
    except ValueError as exc:
        raise InvalidInputError(
            "Unknown session status.",
            details={"status": value, "allowed": [s.value for s in SessionStatus]},
        ) from exc


@router.get("/sessions", response_model=list[SessionOut])
async def list_sessions(db: AsyncSession = Depends(get_db)):
    return [session_out(row) for row in await SessionLedger(db).list_all()]


@router.post("/sessions", response_model=SessionOut, status_code=201)
async def create_session(payload: AdminSessionCreate, db: AsyncSession = Depends(get_db)):
    users = UserStore(db)
    ledger = SessionLedger(db)
    student = await users.get_by_id(payload.student_id)
    if student is None or student.role != UserRole.USER.value:
        raise NotFoundError("Student not found.", details={"student_id": payload.student_id})
    consultant = await users.get_by_id(payload.consultant_id)
    if consultant is None or consultant.role != UserRole.CONSULTANT.value:
        raise NotFoundError("Consultant not found.", details={"consultant_id": payload.consultant_id})

    date = parse_booking_date(payload.date).isoformat()
    time = normalize_time(payload.time)
    status = _status(payload.status)
    if status != SessionStatus.CANCELLED.value and await ledger.has_conflict(consultant.id, date, time):
        raise SlotConflictError(
            "The consultant already has a session at that time.",
            details={"consultant_id": consultant.id, "date": date, "time": time},
        )
    row = await ledger.create(
        student_id=student.id,
        student_name=student.display_name,
        consultant_id=consultant.id,
        consultant_name=consultant.display_name,
        date=date,
        time=time,
        status=status,
        meeting_link=payload.meeting_link,
    )
    logger.info("Admin created session | session_id=%s | consultant_id=%s", row.id, row.consultant_id)
    return session_out(row)


@router.patch("/sessions/{session_id}", response_model=SessionOut)
async def update_session(session_id: str, payload: AdminSessionUpdate, db: AsyncSession = Depends(get_db)):
    ledger = SessionLedger(db)
    row = await ledger.get_by_id(session_id)
    if row is None:
        raise NotFoundError("Session not found.", details={"session_id": session_id})

    changes = payload.model_dump(exclude_unset=True)
    # Only meeting_link may be cleared; the slot fields are required columns.
    for key in ("date", "time", "status"):
        if key in changes and changes[key] is None:
            del changes[key]
    if changes.get("date") is not None:
        changes["date"] = parse_booking_date(changes["date"]).isoformat()
    if changes.get("time") is not None:
        changes["time"] = normalize_time(changes["time"])
    if changes.get("status") is not None:
        changes["status"] = _status(changes["status"])

    date = changes.get("date") or row.date
    time = changes.get("time") or row.time
    status = changes.get("status") or row.status
    if status != SessionStatus.CANCELLED.value and await ledger.has_conflict(
        row.consultant_id, date, time, exclude_id=row.id
    ):
        raise SlotConflictError(
            "The consultant already has a session at that time.",
            details={"consultant_id": row.consultant_id, "date": date, "time": time},
        )
    row = await ledger.update(row, **changes)
    logger.info("Admin updated session | session_id=%s | fields=%s", row.id, ",".join(sorted(changes)))
    return session_out(row)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, db: AsyncSession = Depends(get_db)):
    ledger = SessionLedger(db)
    row = await ledger.get_by_id(session_id)
    if row is None:
        raise NotFoundError("Session not found.", details={"session_id": session_id})
    await ledger.delete(row)
    logger.info("Admin deleted session | session_id=%s", session_id)


@router.get("/consultants", response_model=list[ConsultantOut])
async def list_consultants(db: AsyncSession = Depends(get_db)):
    windows = {row.consultant_id: row for row in await AvailabilityStore(db).list_all()}
    out = []
    for consultant in await UserStore(db).list_by_role(UserRole.CONSULTANT):
        window = windows.get(consultant.id)
        out.append(
            ConsultantOut(
                id=consultant.id,
                name=consultant.display_name,
                email=consultant.email,
                availability=AvailabilityOut(
                    consultant_id=window.consultant_id,
                    days=window.days,
                    start_time=window.start_time,
                    end_time=window.end_time,
                )
                if window
                else None,
            )
        )
    return out


@router.get("/users", response_model=list[UserOut])
async def list_users(db: AsyncSession = Depends(get_db)):
    return [user_out(user) for user in await UserStore(db).list_all()]


@router.patch("/users/{user_id}/tier", response_model=UserOut)
async def update_user_tier(
    user_id: str,
    payload: TierUpdate,
    admin: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    user = await UserStore(db).get_by_id(user_id)
    if user is None or user.role != UserRole.USER.value:
        raise NotFoundError("Learner not found.", details={"user_id": user_id})
    return user_out(await change_tier(db, user, payload.tier, changed_by=admin.id))
