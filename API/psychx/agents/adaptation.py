from enum import Enum

from psychx.core.logging import DOMAIN_ADAPTATION, get_domain_logger
from psychx.schemas.progress import WeeklyPlan

logger = get_domain_logger(__name__, DOMAIN_ADAPTATION)

REDUCED_TASK_CAP = 4
REMEDIAL_TITLE_PREFIX = "Remedial: "
REDUCED_COMPLETION_THRESHOLD = 50


class Directive(str, Enum):
    REMEDIAL = "Remedial"
    REDUCED = "Reduced"
    CHALLENGE = "Challenge"
    STANDARD = "Standard"


DIRECTIVE_GUIDANCE: dict[Directive, str] = {
    Directive.REMEDIAL: (
        "The learner failed last week's verification quiz. Re-teach the same topics using different "
        "resource types (videos instead of articles, or vice versa), lower the difficulty, and prefix "
        "the title with 'Remedial:'."
    ),
    Directive.REDUCED: (
        "The learner completed less than half of last week's tasks. Assign at most 4 smaller, "
        "easier tasks derived from the ones left incomplete."
    ),
    Directive.CHALLENGE: (
        "The learner completed everything and aced the quiz. Introduce a harder concept or a "
        "mini-project that stretches the current phase."
    ),
    Directive.STANDARD: "Continue the roadmap's natural progression at the current pace.",
}


def next_week_directive(plan: WeeklyPlan) -> Directive:
    quiz = plan.quiz
    attempted = quiz is not None and quiz.attempted
    if attempted and not quiz.passed:
        directive = Directive.REMEDIAL
    elif plan.completion_rate < REDUCED_COMPLETION_THRESHOLD:
        directive = Directive.REDUCED
    elif plan.completion_rate == 100 and (not attempted or quiz.score == len(quiz.questions)):
        directive = Directive.CHALLENGE
    else:
        directive = Directive.STANDARD
    logger.info(
        "Directive selected | week=%s | completion_rate=%s | quiz_score=%s | directive=%s",
        plan.week_number,
        plan.completion_rate,
        quiz.score if attempted else None,
        directive.value,
    )
    return directive


def apply_directive(plan: WeeklyPlan, directive: Directive) -> WeeklyPlan:
    """Enforce the directive's hard constraints on a freshly generated plan."""
    update: dict = {}
    if directive == Directive.REDUCED and len(plan.tasks) > REDUCED_TASK_CAP:
        update["tasks"] = plan.tasks[:REDUCED_TASK_CAP]
    if directive == Directive.REMEDIAL and not plan.title.startswith(REMEDIAL_TITLE_PREFIX):
        update["title"] = f"{REMEDIAL_TITLE_PREFIX}{plan.title}"
    if not update:
        return plan
    return plan.model_copy(update=update, deep=True)
