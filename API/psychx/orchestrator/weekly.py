"""Week arithmetic for the progress tracker: task toggling, quiz scoring, finalization.

Everything here is pure; persistence and generation live in ``orchestrator.progress``.
"""

import math

from psychx.schemas.progress import PlanStatus, TaskCategory, WeeklyPlan, WeeklyQuiz

QUIZ_QUESTION_COUNT = 3
QUIZ_PASS_SCORE = 2
FULL_COMPLETION_POINTS = 10
PARTIAL_COMPLETION_POINTS = 5
PARTIAL_COMPLETION_THRESHOLD = 50
QUIZ_PASS_POINTS = 10


def toggle_task(plan: WeeklyPlan, task_id: str) -> WeeklyPlan | None:
    """Return a copy of ``plan`` with one task flipped, or None when the task is unknown."""
    updated = plan.model_copy(deep=True)
    for task in updated.tasks:
        if task.id == task_id:
            task.is_completed = not task.is_completed
            return updated
    return None


def completed_learning_tasks(plan: WeeklyPlan) -> list[str]:
    return [t.text for t in plan.tasks if t.is_completed and t.category == TaskCategory.LEARNING]


def completion_rate(plan: WeeklyPlan) -> int:
    total = len(plan.tasks)
    if total == 0:
        return 0
    done = sum(1 for t in plan.tasks if t.is_completed)
    # Half-up, so 1/8 (12.5%) reports 13 rather than banker's 12.
    return int(math.floor(100 * done / total + 0.5))


def score_quiz(quiz: WeeklyQuiz, answers: list[int]) -> WeeklyQuiz:
    score = sum(1 for q, a in zip(quiz.questions, answers) if q.correct_option_index == a)
    return quiz.model_copy(
        update={"user_answers": list(answers), "score": score, "passed": quiz_passed(score)},
        deep=True,
    )


def quiz_passed(score: int) -> bool:
    return score >= QUIZ_PASS_SCORE


def score_delta(rate: int, quiz: WeeklyQuiz | None) -> int:
    delta = 0
    if rate == 100:
        delta = FULL_COMPLETION_POINTS
    elif rate >= PARTIAL_COMPLETION_THRESHOLD:
        delta = PARTIAL_COMPLETION_POINTS
    if quiz is not None and quiz.attempted and quiz.passed:
        delta += QUIZ_PASS_POINTS
    return delta


def finalize_week(plan: WeeklyPlan, quiz: WeeklyQuiz | None = None) -> tuple[WeeklyPlan, int]:
    """Freeze the week: completed status, completion-rate snapshot, scored quiz attached."""
    rate = completion_rate(plan)
    attached = quiz if quiz is not None else plan.quiz
    finalized = plan.model_copy(
        update={"status": PlanStatus.COMPLETED, "completion_rate": rate, "quiz": attached},
        deep=True,
    )
    return finalized, score_delta(rate, attached)
