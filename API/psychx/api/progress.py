from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from psychx.agents.base import ContentGenerator
from psychx.api.deps import get_content_generator
from psychx.core.auth import require_role
from psychx.memory.database import get_db
from psychx.models.entities import User, UserRole
from psychx.orchestrator.progress import ProgressTrackerService, SubmitOutcome
from psychx.schemas.progress import (
    PublicQuiz,
    QuizAnswersRequest,
    StartTrackerRequest,
    SubmitWeekResponse,
    TrackerView,
)

router = APIRouter(prefix="/progress", tags=["progress"])

learner = require_role(UserRole.USER)


def get_progress_service(
    db: AsyncSession = Depends(get_db),
    generator: ContentGenerator = Depends(get_content_generator),
) -> ProgressTrackerService:
    return ProgressTrackerService(db, generator)


async def _submit_response(service: ProgressTrackerService, tracker, outcome: SubmitOutcome) -> SubmitWeekResponse:
    return SubmitWeekResponse(
        outcome=outcome.outcome,
        tracker=await service.view(tracker),
        quiz=PublicQuiz.from_quiz(outcome.quiz) if outcome.quiz is not None else None,
        score_delta=outcome.score_delta,
        directive=outcome.directive.value if outcome.directive is not None else None,
        finalized_week=outcome.finalized_week,
    )


@router.post("", response_model=TrackerView, status_code=201)
async def start_tracker(
    payload: StartTrackerRequest,
    response: Response,
    user: User = Depends(learner),
    service: ProgressTrackerService = Depends(get_progress_service),
):
    tracker, created = await service.ensure_tracker(user, payload.roadmap_id)
    if not created:
        response.status_code = 200
    return await service.view(tracker)


@router.get("/active", response_model=TrackerView)
async def active_tracker(
    user: User = Depends(learner),
    service: ProgressTrackerService = Depends(get_progress_service),
):
    return await service.view(await service.get_active(user))


@router.post("/{tracker_id}/tasks/{task_id}/toggle", response_model=TrackerView)
async def toggle_task(
    tracker_id: str,
    task_id: str,
    user: User = Depends(learner),
    service: ProgressTrackerService = Depends(get_progress_service),
):
    tracker = await service.get_owned(user, tracker_id)
    return await service.view(await service.toggle_task(tracker, task_id))


@router.post("/{tracker_id}/submit", response_model=SubmitWeekResponse)
async def submit_week(
    tracker_id: str,
    user: User = Depends(learner),
    service: ProgressTrackerService = Depends(get_progress_service),
):
    tracker = await service.get_owned(user, tracker_id)
    outcome = await service.submit_week(tracker)
    return await _submit_response(service, tracker, outcome)


@router.post("/{tracker_id}/quiz", response_model=SubmitWeekResponse)
async def submit_quiz(
    tracker_id: str,
    payload: QuizAnswersRequest,
    user: User = Depends(learner),
    service: ProgressTrackerService = Depends(get_progress_service),
):
    tracker = await service.get_owned(user, tracker_id)
    outcome = await service.submit_quiz(tracker, payload.answers)
    return await _submit_response(service, tracker, outcome)


@router.post("/{tracker_id}/phase/advance", response_model=TrackerView)
async def advance_phase(
    tracker_id: str,
    user: User = Depends(learner),
    service: ProgressTrackerService = Depends(get_progress_service),
):
    tracker = await service.get_owned(user, tracker_id)
    return await service.view(await service.advance_phase(tracker))
