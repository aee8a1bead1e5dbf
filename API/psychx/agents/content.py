from pydantic import ValidationError

from psychx.agents.adaptation import Directive
from psychx.agents.base import ContentGenerator
from psychx.agents.prompts import (
    QUESTION_BATCH_SIZE,
    QUESTIONS_SCHEMA,
    QUIZ_SCHEMA,
    RECOMMENDATIONS_SCHEMA,
    ROADMAP_SCHEMA,
    WEEKLY_PLAN_SCHEMA,
    questions_prompt,
    quiz_prompt,
    recommendations_prompt,
    roadmap_prompt,
    weekly_plan_prompt,
)
from psychx.core.json_parser import extract_list, parse_llm_json
from psychx.core.llm_provider import BaseLLMProvider, get_llm_provider
from psychx.core.logging import DOMAIN_GENERATION, get_domain_logger
from psychx.orchestrator.weekly import QUIZ_QUESTION_COUNT
from psychx.schemas.assessment import AssessmentProfile, AssessmentQuestion, CareerRecommendation
from psychx.schemas.progress import PlanStatus, QuizQuestion, WeeklyPlan, WeeklyQuiz, WeeklyTask
from psychx.schemas.roadmap import RoadmapStep

logger = get_domain_logger(__name__, DOMAIN_GENERATION)

MAX_RECOMMENDATIONS = 3
MAX_ROADMAP_PHASES = 6


def _valid_items(raw_items: list, model, operation: str) -> list:
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        try:
            items.append(model.model_validate(raw))
        except ValidationError as exc:
            logger.info("Dropping malformed %s item | errors=%s", operation, exc.error_count())
    return items


class LLMContentGenerator(ContentGenerator):
    """Prompts the configured LLM provider for JSON and validates what comes back."""

    def __init__(self, provider: BaseLLMProvider | None = None):
        self.provider = provider or get_llm_provider()

    async def _ask(self, prompt: str, schema: dict, operation: str):
        try:
            text, usage = await self.provider.generate(prompt, response_schema=schema)
        except Exception as exc:
            # Upstream failures become empty results; callers decide whether that is fatal.
            logger.warning("Content generation failed | operation=%s | error=%s", operation, exc)
            return {}
        if not text:
            logger.warning("Content generation returned nothing | operation=%s | usage=%s", operation, usage)
            return {}
        logger.info(
            "Content generated | operation=%s | provider=%s | tokens=%s",
            operation,
            usage.get("provider"),
            usage.get("total_tokens_estimate"),
        )
        return parse_llm_json(text)

    async def generate_questions(
        self, categories: list[str], student_class: str, previous_answers: list[dict]
    ) -> list[AssessmentQuestion]:
        payload = await self._ask(
            questions_prompt(categories, student_class, previous_answers), QUESTIONS_SCHEMA, "questions"
        )
        questions = _valid_items(extract_list(payload, "questions"), AssessmentQuestion, "question")
        return questions[:QUESTION_BATCH_SIZE]

    async def analyze_profile(self, profile: AssessmentProfile) -> list[CareerRecommendation]:
        payload = await self._ask(
            recommendations_prompt(profile.model_dump(mode="json")), RECOMMENDATIONS_SCHEMA, "recommendations"
        )
        recommendations = _valid_items(
            extract_list(payload, "recommendations"), CareerRecommendation, "recommendation"
        )
        return recommendations[:MAX_RECOMMENDATIONS]

    async def generate_roadmap(self, career_title: str, current_class: str, years: int) -> list[RoadmapStep]:
        payload = await self._ask(roadmap_prompt(career_title, current_class, years), ROADMAP_SCHEMA, "roadmap")
        steps = _valid_items(extract_list(payload, "steps"), RoadmapStep, "roadmap phase")
        return steps[:MAX_ROADMAP_PHASES]

    async def generate_weekly_plan(
        self,
        career_title: str,
        phase: str,
        week_number: int,
        previous_plan: WeeklyPlan | None = None,
        directive: Directive | None = None,
    ) -> WeeklyPlan | None:
        previous = previous_plan.model_dump(mode="json") if previous_plan is not None else None
        payload = await self._ask(
            weekly_plan_prompt(career_title, phase, week_number, previous, directive),
            WEEKLY_PLAN_SCHEMA,
            "weekly_plan",
        )
        if not isinstance(payload, dict):
            return None

        tasks: list[WeeklyTask] = []
        seen: set[str] = set()
        for index, raw in enumerate(extract_list(payload, "tasks"), start=1):
            if not isinstance(raw, dict):
                continue
            task_id = str(raw.get("id") or "").strip()
            if not task_id or task_id in seen:
                task_id = f"w{week_number}-t{index}"
            try:
                task = WeeklyTask(
                    id=task_id, text=str(raw.get("text") or "").strip(), category=raw.get("category"), is_completed=False
                )
            except ValidationError:
                logger.info("Dropping malformed weekly task | week=%s | index=%s", week_number, index)
                continue
            seen.add(task.id)
            tasks.append(task)

        if not tasks:
            return None
        return WeeklyPlan(
            week_number=week_number,
            title=str(payload.get("week_title") or f"Week {week_number}").strip(),
            tasks=tasks,
            status=PlanStatus.ACTIVE,
            completion_rate=0,
            ai_feedback=payload.get("ai_feedback") or None,
        )

    async def generate_weekly_quiz(self, task_texts: list[str]) -> WeeklyQuiz:
        if not task_texts:
            return WeeklyQuiz(questions=[])
        payload = await self._ask(quiz_prompt(task_texts), QUIZ_SCHEMA, "weekly_quiz")
        questions = _valid_items(extract_list(payload, "questions"), QuizQuestion, "quiz question")
        questions = [
            q.model_copy(update={"id": number}) for number, q in enumerate(questions[:QUIZ_QUESTION_COUNT], start=1)
        ]
        return WeeklyQuiz(questions=questions)
