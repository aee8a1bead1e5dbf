from abc import ABC, abstractmethod

from psychx.agents.adaptation import Directive
from psychx.schemas.assessment import AssessmentProfile, AssessmentQuestion, CareerRecommendation
from psychx.schemas.progress import WeeklyPlan, WeeklyQuiz
from psychx.schemas.roadmap import RoadmapStep


class ContentGenerator(ABC):
    """One method per generated content type. Implementations return empty results on failure."""

    @abstractmethod
    async def generate_questions(
        self, categories: list[str], student_class: str, previous_answers: list[dict]
    ) -> list[AssessmentQuestion]:
        raise NotImplementedError

    @abstractmethod
    async def analyze_profile(self, profile: AssessmentProfile) -> list[CareerRecommendation]:
        raise NotImplementedError

    @abstractmethod
    async def generate_roadmap(self, career_title: str, current_class: str, years: int) -> list[RoadmapStep]:
        raise NotImplementedError

    @abstractmethod
    async def generate_weekly_plan(
        self,
        career_title: str,
        phase: str,
        week_number: int,
        previous_plan: WeeklyPlan | None = None,
        directive: Directive | None = None,
    ) -> WeeklyPlan | None:
        raise NotImplementedError

    @abstractmethod
    async def generate_weekly_quiz(self, task_texts: list[str]) -> WeeklyQuiz:
        raise NotImplementedError
