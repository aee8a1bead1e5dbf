from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.core.auth import get_current_user, get_optional_user, require_role
from psychx.memory.database import get_db
from psychx.memory.records import SessionLedger
from psychx.models.entities import ConsultationSession, User, UserRole
from psychx.orchestrator.booking import (
    REASON_ENTITLEMENT_DENIED,
    REASON_INVALID_INPUT,
    REASON_NOT_LOGGED_IN,
    SchedulingEngine,
)
from psychx.schemas.booking import BookingRequest, BookingResponse, SessionOut

router = APIRouter(prefix="/sessions", tags=["sessions"])

# Infeasible slots are an ordinary outcome (200, success=false); only these reasons change the status.
_REASON_STATUS = {
    REASON_NOT_LOGGED_IN: 401,
    REASON_INVALID_INPUT: 422,
    REASON_ENTITLEMENT_DENIED: 403,
}


def session_out(row: ConsultationSession, *, joinable: bool | None = None) -> SessionOut:
    return SessionOut(
        id=row.id,
        student_id=row.student_id,
        student_name=row.student_name,
        consultant_id=row.consultant_id,
        consultant_name=row.consultant_name,
        date=row.date,
        time=row.time,
        status=row.status,
        meeting_link=row.meeting_link,
        joinable=joinable,
    )


@router.post("/book", response_model=BookingResponse)
async def book_session(
    payload: BookingRequest,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    result = await SchedulingEngine.for_session(db).book_session(user, payload.date, payload.time)
    body = BookingResponse(
        success=result.success,
        message=result.message,
        reason=result.reason,
        consultant_name=result.consultant_name,
        session_id=result.session_id,
    )
    return JSONResponse(status_code=_REASON_STATUS.get(result.reason, 200), content=body.model_dump())


@router.get("/mine", response_model=list[SessionOut])
async def my_sessions(
    user: User = Depends(require_role(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
):
    return [session_out(row) for row in await SessionLedger(db).list_by_student(user.id)]


@router.get("/eligible")
async def eligible_consultants(
    date: str,
    time: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Preview which consultants could take a slot without booking it."""
    candidates = await SchedulingEngine.for_session(db).eligible_consultants(date, time)
    return {"date": date, "time": time, "consultants": [{"id": c.consultant_id, "name": c.name} for c in candidates]}
