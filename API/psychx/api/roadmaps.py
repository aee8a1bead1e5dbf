from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.agents.base import ContentGenerator
from psychx.api.deps import get_content_generator
from psychx.core.auth import require_role
from psychx.core.entitlements import check_usage_limit
from psychx.core.errors import EntitlementDeniedError, GenerationFailedError, NotFoundError
from psychx.core.logging import DOMAIN_GENERATION, get_domain_logger
from psychx.core.resilience import call_with_timeout
from psychx.core.settings import settings
from psychx.memory.database import get_db
from psychx.memory.records import RoadmapStore
from psychx.models.entities import RoadmapEntry, User, UserRole
from psychx.schemas.roadmap import RoadmapOut, RoadmapRequest, RoadmapStep

router = APIRouter(prefix="/roadmaps", tags=["roadmaps"])
logger = get_domain_logger(__name__, DOMAIN_GENERATION)


def roadmap_out(row: RoadmapEntry) -> RoadmapOut:
    return RoadmapOut(
        id=row.id,
        user_id=row.user_id,
        career_title=row.career_title,
        created_at=row.created_at,
        steps=[RoadmapStep.model_validate(step) for step in row.steps or []],
    )


@router.post("", response_model=RoadmapOut, status_code=201)
async def create_roadmap(
    payload: RoadmapRequest,
    user: User = Depends(require_role(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
    generator: ContentGenerator = Depends(get_content_generator),
):
    store = RoadmapStore(db)
    user_id = user.id
    decision = check_usage_limit(user, "roadmaps", await store.count_by_user(user_id))
    if not decision.allowed:
        raise EntitlementDeniedError(decision.reason, details={"feature": "roadmaps"})

    steps = await call_with_timeout(
        generator.generate_roadmap(payload.career_title, user.current_class, payload.years_to_invest),
        timeout_seconds=settings.generation_timeout_seconds,
        operation="roadmap",
    )
    if not steps:
        raise GenerationFailedError(
            "Failed to generate a roadmap. Please try again.", details={"operation": "roadmap"}
        )
    row = await store.create(
        user_id=user_id,
        career_title=payload.career_title.strip(),
        steps=[step.model_dump(mode="json") for step in steps],
    )
    logger.info("Roadmap saved | roadmap_id=%s | phases=%s", row.id, len(steps))
    return roadmap_out(row)


@router.get("", response_model=list[RoadmapOut])
async def list_roadmaps(
    user: User = Depends(require_role(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
):
    return [roadmap_out(row) for row in await RoadmapStore(db).list_by_user(user.id)]


@router.get("/{roadmap_id}", response_model=RoadmapOut)
async def get_roadmap(
    roadmap_id: str,
    user: User = Depends(require_role(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
):
    row = await RoadmapStore(db).get_by_id(roadmap_id)
    if row is None or row.user_id != user.id:
        raise NotFoundError("Roadmap not found.", details={"roadmap_id": roadmap_id})
    return roadmap_out(row)
