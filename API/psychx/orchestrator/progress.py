import json
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from psychx.agents.adaptation import Directive, apply_directive, next_week_directive
from psychx.agents.base import ContentGenerator
from psychx.core.entitlements import can_use_feature
from psychx.core.errors import (
    EntitlementDeniedError,
    GenerationInProgressError,
    GenerationFailedError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from psychx.core.logging import DOMAIN_PROGRESS, get_domain_logger
from psychx.core.resilience import call_with_timeout, get_inflight_guard
from psychx.core.settings import settings
from psychx.memory.records import RoadmapStore, TrackerStore
from psychx.models.entities import ProgressTracker, User
from psychx.orchestrator.states import TrackerEvent, TrackerState, TrackerStateMachine
from psychx.orchestrator.weekly import (
    QUIZ_QUESTION_COUNT,
    completed_learning_tasks,
    finalize_week,
    score_quiz,
    toggle_task,
)
from psychx.schemas.progress import PlanStatus, PublicQuiz, TrackerView, WeeklyPlan, WeeklyQuiz

logger = get_domain_logger(__name__, DOMAIN_PROGRESS)

FALLBACK_PHASE = "General Progression"
OUTCOME_QUIZ_PENDING = "quiz_pending"
OUTCOME_ADVANCED = "advanced"


@dataclass
class SubmitOutcome:
    outcome: str
    quiz: WeeklyQuiz | None = None
    score_delta: int | None = None
    directive: Directive | None = None
    finalized_week: WeeklyPlan | None = None


def phase_name(steps: list[dict] | None, index: int) -> str:
    if steps and 0 <= index < len(steps):
        name = str((steps[index] or {}).get("phase") or "").strip()
        if name:
            return name
    return FALLBACK_PHASE


def tracker_view(tracker: ProgressTracker, current_phase: str) -> TrackerView:
    pending = WeeklyQuiz.model_validate(tracker.pending_quiz) if tracker.pending_quiz else None
    return TrackerView(
        id=tracker.id,
        user_id=tracker.user_id,
        roadmap_id=tracker.roadmap_id,
        career_title=tracker.career_title,
        current_phase_index=tracker.current_phase_index,
        current_phase=current_phase,
        total_weeks_completed=tracker.total_weeks_completed,
        overall_progress_score=tracker.overall_progress_score,
        state=tracker.state,
        history=[WeeklyPlan.model_validate(item) for item in tracker.history or []],
        current_week=WeeklyPlan.model_validate(tracker.current_week),
        pending_quiz=PublicQuiz.from_quiz(pending) if pending is not None else None,
    )


class ProgressTrackerService:
    """Drives one learner's tracker through toggle, quiz and weekly finalization."""

    def __init__(
        self,
        db: AsyncSession,
        generator: ContentGenerator,
        *,
        guard=None,
        timeout_seconds: float | None = None,
    ):
        self.trackers = TrackerStore(db)
        self.roadmaps = RoadmapStore(db)
        self.generator = generator
        self.guard = guard or get_inflight_guard()
        self.timeout_seconds = timeout_seconds or settings.generation_timeout_seconds
        self.machine = TrackerStateMachine()

    @staticmethod
    def _log_transition(tracker: ProgressTracker, event: str, **extra) -> None:
        payload = {
            "tracker_id": tracker.id,
            "event": event,
            "state": tracker.state,
            "week": tracker.total_weeks_completed + 1,
            "score": tracker.overall_progress_score,
        }
        payload.update(extra)
        logger.info("Tracker transition | %s", json.dumps(payload, default=str))

    async def current_phase(self, tracker: ProgressTracker) -> str:
        roadmap = await self.roadmaps.get_by_id(tracker.roadmap_id)
        return phase_name(roadmap.steps if roadmap else None, tracker.current_phase_index)

    async def view(self, tracker: ProgressTracker) -> TrackerView:
        return tracker_view(tracker, await self.current_phase(tracker))

    async def _generate_plan(
        self,
        career_title: str,
        phase: str,
        week_number: int,
        previous_plan: WeeklyPlan | None = None,
        directive: Directive | None = None,
    ) -> WeeklyPlan:
        plan = await call_with_timeout(
            self.generator.generate_weekly_plan(career_title, phase, week_number, previous_plan, directive),
            timeout_seconds=self.timeout_seconds,
            operation="weekly_plan",
        )
        if plan is None or not plan.tasks:
            raise GenerationFailedError(
                "The AI coach could not prepare your weekly plan. Please try again.",
                details={"operation": "weekly_plan", "week_number": week_number},
            )
        if directive is not None:
            plan = apply_directive(plan, directive)
        return plan.model_copy(update={"week_number": week_number, "status": PlanStatus.ACTIVE, "completion_rate": 0})

    async def init_tracker(self, user: User, roadmap_id: str) -> ProgressTracker:
        tracker, _ = await self.ensure_tracker(user, roadmap_id)
        return tracker

    async def ensure_tracker(self, user: User, roadmap_id: str) -> tuple[ProgressTracker, bool]:
        """Return the user's tracker for the roadmap and whether this call created it."""
        decision = can_use_feature(user, "tracking")
        if not decision.allowed:
            raise EntitlementDeniedError(decision.reason, details={"feature": "tracking"})

        user_id = user.id
        roadmap = await self.roadmaps.get_by_id(roadmap_id)
        if roadmap is None or roadmap.user_id != user_id:
            raise NotFoundError("Roadmap not found.", details={"roadmap_id": roadmap_id})
        steps = roadmap.steps or []
        if not any((step or {}).get("milestones") for step in steps):
            raise InvalidInputError(
                "This roadmap has no milestones to track yet.", details={"roadmap_id": roadmap_id}
            )

        existing = await self.trackers.get_for_roadmap(user_id, roadmap_id)
        if existing is not None:
            return existing, False

        async with self.guard.hold(f"tracker-init:{user_id}:{roadmap_id}"):
            # A request that finished between the first lookup and acquiring the guard already created it.
            existing = await self.trackers.get_for_roadmap(user_id, roadmap_id)
            if existing is not None:
                return existing, False
            plan = await self._generate_plan(roadmap.career_title, phase_name(steps, 0), 1)
            tracker = await self.trackers.create(
                user_id=user_id,
                roadmap_id=roadmap_id,
                career_title=roadmap.career_title,
                current_phase_index=0,
                total_weeks_completed=0,
                overall_progress_score=0,
                state=TrackerState.ACTIVE.value,
                history=[],
                current_week=plan.model_dump(mode="json"),
                pending_quiz=None,
            )
        self._log_transition(tracker, "initialized", roadmap_id=roadmap_id)
        return tracker, True

    async def get_active(self, user: User) -> ProgressTracker:
        tracker = await self.trackers.get_first_for_user(user.id)
        if tracker is None:
            raise NotFoundError("No progress tracker has been started yet.")
        return tracker

    async def get_owned(self, user: User, tracker_id: str) -> ProgressTracker:
        tracker = await self.trackers.get_by_id(tracker_id)
        if tracker is None or tracker.user_id != user.id:
            raise NotFoundError("Progress tracker not found.", details={"tracker_id": tracker_id})
        return tracker

    async def toggle_task(self, tracker: ProgressTracker, task_id: str) -> ProgressTracker:
        self.machine.ensure(tracker.state, TrackerEvent.TOGGLE_TASK)
        if await self.guard.is_held(f"tracker:{tracker.id}"):
            raise GenerationInProgressError(
                "Your week is being submitted. Please wait before changing tasks.",
                details={"tracker_id": tracker.id},
            )
        updated = toggle_task(WeeklyPlan.model_validate(tracker.current_week), task_id)
        if updated is None:
            raise NotFoundError("Task not found in the current week.", details={"task_id": task_id})
        tracker.current_week = updated.model_dump(mode="json")
        return await self.trackers.save(tracker)

    async def submit_week(self, tracker: ProgressTracker) -> SubmitOutcome:
        async with self.guard.hold(f"tracker:{tracker.id}"):
            plan = WeeklyPlan.model_validate(tracker.current_week)

            if tracker.state == TrackerState.QUIZ_PENDING.value:
                quiz = WeeklyQuiz.model_validate(tracker.pending_quiz)
                if not quiz.attempted:
                    # Re-show the outstanding quiz rather than issuing a second one.
                    return SubmitOutcome(outcome=OUTCOME_QUIZ_PENDING, quiz=quiz)
                return await self._finalize_and_advance(tracker, plan, quiz)

            self.machine.ensure(tracker.state, TrackerEvent.SUBMIT_WEEK)
            learning = completed_learning_tasks(plan)
            if not learning:
                return await self._finalize_and_advance(tracker, plan, None)

            quiz = await call_with_timeout(
                self.generator.generate_weekly_quiz(learning),
                timeout_seconds=self.timeout_seconds,
                operation="weekly_quiz",
            )
            if quiz is None or len(quiz.questions) != QUIZ_QUESTION_COUNT:
                raise GenerationFailedError(
                    "The AI coach could not prepare your verification quiz. Please try again.",
                    details={"operation": "weekly_quiz"},
                )
            tracker.pending_quiz = quiz.model_dump(mode="json")
            tracker.state = self.machine.next_state(tracker.state, TrackerEvent.QUIZ_ISSUED).value
            tracker = await self.trackers.save(tracker)
            self._log_transition(tracker, "quiz_issued", learning_tasks=len(learning))
            return SubmitOutcome(outcome=OUTCOME_QUIZ_PENDING, quiz=quiz)

    async def submit_quiz(self, tracker: ProgressTracker, answers: list[int]) -> SubmitOutcome:
        async with self.guard.hold(f"tracker:{tracker.id}"):
            self.machine.ensure(tracker.state, TrackerEvent.SUBMIT_QUIZ)
            quiz = WeeklyQuiz.model_validate(tracker.pending_quiz)
            if not quiz.attempted:
                if len(answers) != len(quiz.questions):
                    raise InvalidInputError(
                        f"Answer all {len(quiz.questions)} questions before submitting.",
                        details={"expected": len(quiz.questions), "received": len(answers)},
                    )
                quiz = score_quiz(quiz, answers)
                # Keep the scored attempt so a failed plan generation can be retried without re-answering.
                tracker.pending_quiz = quiz.model_dump(mode="json")
                tracker = await self.trackers.save(tracker)
                self._log_transition(tracker, "quiz_scored", quiz_score=quiz.score, passed=quiz.passed)
            plan = WeeklyPlan.model_validate(tracker.current_week)
            return await self._finalize_and_advance(tracker, plan, quiz)

    async def _finalize_and_advance(
        self, tracker: ProgressTracker, plan: WeeklyPlan, quiz: WeeklyQuiz | None
    ) -> SubmitOutcome:
        finalized, delta = finalize_week(plan, quiz)
        directive = next_week_directive(finalized)
        weeks_completed = tracker.total_weeks_completed + 1
        next_plan = await self._generate_plan(
            tracker.career_title,
            await self.current_phase(tracker),
            weeks_completed + 1,
            finalized,
            directive,
        )

        tracker.history = [*(tracker.history or []), finalized.model_dump(mode="json")]
        tracker.current_week = next_plan.model_dump(mode="json")
        tracker.total_weeks_completed = weeks_completed
        tracker.overall_progress_score = tracker.overall_progress_score + delta
        tracker.state = self.machine.next_state(tracker.state, TrackerEvent.WEEK_ADVANCED).value
        tracker.pending_quiz = None
        tracker = await self.trackers.save(tracker)
        self._log_transition(
            tracker,
            "week_advanced",
            completion_rate=finalized.completion_rate,
            score_delta=delta,
            directive=directive.value,
        )
        return SubmitOutcome(
            outcome=OUTCOME_ADVANCED, score_delta=delta, directive=directive, finalized_week=finalized
        )

    async def advance_phase(self, tracker: ProgressTracker) -> ProgressTracker:
        self.machine.ensure(tracker.state, TrackerEvent.ADVANCE_PHASE)
        roadmap = await self.roadmaps.get_by_id(tracker.roadmap_id)
        steps = roadmap.steps if roadmap else []
        if tracker.current_phase_index >= len(steps) - 1:
            raise InvalidStateError(
                "You are already on the final phase of this roadmap.",
                details={"current_phase_index": tracker.current_phase_index},
            )
        tracker.current_phase_index = tracker.current_phase_index + 1
        tracker = await self.trackers.save(tracker)
        self._log_transition(tracker, "phase_advanced", phase=phase_name(steps, tracker.current_phase_index))
        return tracker
