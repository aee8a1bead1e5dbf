from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.api.booking import session_out
from psychx.core.auth import require_role
from psychx.core.errors import NotFoundError
from psychx.core.logging import DOMAIN_SCHEDULING, get_domain_logger
from psychx.memory.database import get_db
from psychx.memory.records import AvailabilityStore, SessionLedger
from psychx.models.entities import SessionStatus, User, UserRole
from psychx.orchestrator.booking import is_session_joinable
from psychx.schemas.booking import AvailabilityIn, AvailabilityOut, SessionOut

router = APIRouter(prefix="/consultants", tags=["consultants"])
logger = get_domain_logger(__name__, DOMAIN_SCHEDULING)


@router.get("/me/availability", response_model=AvailabilityOut)
async def get_my_availability(
    user: User = Depends(require_role(UserRole.CONSULTANT)),
    db: AsyncSession = Depends(get_db),
):
    row = await AvailabilityStore(db).get_by_consultant_id(user.id)
    if row is None:
        raise NotFoundError("No availability has been set yet.")
    return AvailabilityOut(
        consultant_id=row.consultant_id, days=row.days, start_time=row.start_time, end_time=row.end_time
    )


@router.put("/me/availability", response_model=AvailabilityOut)
async def set_my_availability(
    payload: AvailabilityIn,
    user: User = Depends(require_role(UserRole.CONSULTANT)),
    db: AsyncSession = Depends(get_db),
):
    consultant_id = user.id
    row = await AvailabilityStore(db).upsert(
        consultant_id, days=payload.days, start_time=payload.start_time, end_time=payload.end_time
    )
    logger.info(
        "Availability updated | consultant_id=%s | days=%s | window=%s-%s",
        consultant_id,
        ",".join(row.days),
        row.start_time,
        row.end_time,
    )
    return AvailabilityOut(
        consultant_id=row.consultant_id, days=row.days, start_time=row.start_time, end_time=row.end_time
    )


@router.get("/me/sessions", response_model=list[SessionOut])
async def my_consultations(
    user: User = Depends(require_role(UserRole.CONSULTANT)),
    db: AsyncSession = Depends(get_db),
):
    rows = await SessionLedger(db).list_by_consultant(user.id)
    return [
        session_out(
            row,
            joinable=row.status == SessionStatus.SCHEDULED.value and is_session_joinable(row.date, row.time),
        )
        for row in rows
    ]
