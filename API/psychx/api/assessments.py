from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.agents.base import ContentGenerator
from psychx.agents.prompts import QUESTION_BATCH_SIZE
from psychx.api.deps import get_content_generator
from psychx.core.auth import require_role
from psychx.core.entitlements import check_usage_limit
from psychx.core.errors import EntitlementDeniedError, GenerationFailedError, NotFoundError
from psychx.core.logging import DOMAIN_GENERATION, get_domain_logger
from psychx.core.resilience import call_with_timeout
from psychx.core.settings import settings
from psychx.memory.database import get_db
from psychx.memory.records import AssessmentStore
from psychx.models.entities import AssessmentResult, User, UserRole
from psychx.schemas.assessment import (
    AssessmentOut,
    AssessmentProfile,
    CareerRecommendation,
    QuestionBatchRequest,
    QuestionBatchResponse,
)

router = APIRouter(prefix="/assessments", tags=["assessments"])
logger = get_domain_logger(__name__, DOMAIN_GENERATION)


def assessment_out(row: AssessmentResult) -> AssessmentOut:
    return AssessmentOut(
        id=row.id,
        user_id=row.user_id,
        created_at=row.created_at,
        recommendations=[CareerRecommendation.model_validate(item) for item in row.recommendations or []],
    )


async def _ensure_quota(user: User, store: AssessmentStore) -> None:
    decision = check_usage_limit(user, "assessments", await store.count_by_user(user.id))
    if not decision.allowed:
        raise EntitlementDeniedError(decision.reason, details={"feature": "assessments"})


@router.post("/questions", response_model=QuestionBatchResponse)
async def next_question_batch(
    payload: QuestionBatchRequest,
    user: User = Depends(require_role(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
    generator: ContentGenerator = Depends(get_content_generator),
):
    await _ensure_quota(user, AssessmentStore(db))
    previous = [answer.model_dump() for answer in payload.previous_answers]
    questions = await call_with_timeout(
        generator.generate_questions([c.value for c in payload.categories], user.current_class, previous),
        timeout_seconds=settings.generation_timeout_seconds,
        operation="questions",
    )
    if not questions:
        raise GenerationFailedError(
            "Could not prepare assessment questions. Please try again.", details={"operation": "questions"}
        )
    return QuestionBatchResponse(batch_number=len(previous) // QUESTION_BATCH_SIZE + 1, questions=questions)


@router.post("/analyze", response_model=AssessmentOut, status_code=201)
async def analyze(
    payload: AssessmentProfile,
    user: User = Depends(require_role(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
    generator: ContentGenerator = Depends(get_content_generator),
):
    store = AssessmentStore(db)
    user_id = user.id
    await _ensure_quota(user, store)
    profile = payload if payload.student_class else payload.model_copy(update={"student_class": user.current_class})
    recommendations = await call_with_timeout(
        generator.analyze_profile(profile),
        timeout_seconds=settings.generation_timeout_seconds,
        operation="recommendations",
    )
    if not recommendations:
        raise GenerationFailedError(
            "Could not analyze your answers. Please try again.", details={"operation": "recommendations"}
        )
    row = await store.create(user_id=user_id, recommendations=[r.model_dump(mode="json") for r in recommendations])
    logger.info("Assessment saved | assessment_id=%s | recommendations=%s", row.id, len(recommendations))
    return assessment_out(row)


@router.get("/latest", response_model=AssessmentOut)
async def latest(
    user: User = Depends(require_role(UserRole.USER)),
    db: AsyncSession = Depends(get_db),
):
    row = await AssessmentStore(db).latest_by_user(user.id)
    if row is None:
        raise NotFoundError("No assessment has been completed yet.")
    return assessment_out(row)
